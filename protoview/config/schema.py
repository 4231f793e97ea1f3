#!/usr/bin/env python3
"""
Configuration schema definition for validation
"""
from typing import Dict, Any, List


class ConfigSchema:
    """Configuration schema for validation"""

    SCHEMA = {
        'database': {
            'host': {'type': str, 'required': True},
            'port': {'type': int, 'required': True},
            'database': {'type': str, 'required': True},
            'user': {'type': str, 'required': True},
            'password': {'type': str, 'required': False},
        },
        'storage': {
            'schema': {'type': str, 'required': True},
            'table': {'type': str, 'required': True},
            'migrations_dir': {'type': str, 'required': False},
            'scan_batch_size': {'type': int, 'required': False},
        },
        'logging': {
            'level': {'type': str, 'required': False},
            'format': {'type': str, 'required': False},
            'log_dir': {'type': str, 'required': False},
        },
        'ingestion': {
            'default_analysis_version': {'type': str, 'required': False},
            'default_alphafold_version': {'type': str, 'required': False},
            'default_ipsae_pae_cutoff': {'type': (int, float), 'required': False},
            'conflict_retries': {'type': int, 'required': False},
        },
        'cleanup': {
            'dry_run': {'type': bool, 'required': False},
        },
    }

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> List[str]:
        """Validate configuration against schema

        Args:
            config: Configuration to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for section, fields in cls.SCHEMA.items():
            section_config = config.get(section)
            section_required = any(props.get('required', False) for props in fields.values())

            if section_config is None:
                if section_required:
                    errors.append(f"Missing required configuration section: {section}")
                continue

            if not isinstance(section_config, dict):
                errors.append(f"Configuration section {section} must be a mapping")
                continue

            for field, props in fields.items():
                if field not in section_config:
                    if props.get('required', False):
                        errors.append(f"Missing required configuration field: {section}.{field}")
                    continue

                expected_type = props.get('type')
                value = section_config[field]
                # bool is an int subclass; do not let True pass as a port number
                if expected_type is not bool and isinstance(value, bool):
                    errors.append(f"Invalid type for {section}.{field}: got bool")
                elif expected_type and not isinstance(value, expected_type):
                    expected_name = (
                        " or ".join(t.__name__ for t in expected_type)
                        if isinstance(expected_type, tuple) else expected_type.__name__
                    )
                    errors.append(
                        f"Invalid type for {section}.{field}: expected {expected_name}, "
                        f"got {type(value).__name__}"
                    )

        return errors
