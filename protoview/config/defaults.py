#!/usr/bin/env python3
"""
Default configuration values for ProtoView
"""

DEFAULT_CONFIG = {
    'database': {
        'database': 'protoview',
        'host': 'localhost',
        'port': 5432,
        'user': 'protoview',
    },
    'storage': {
        'schema': 'protoview',
        'table': 'prediction_records',
        'migrations_dir': 'protoview/db/migrations',
        'scan_batch_size': 2000,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
    'ingestion': {
        'default_analysis_version': 'v3',
        'default_alphafold_version': 'AF3',
        'default_ipsae_pae_cutoff': 10.0,
        'conflict_retries': 2,
    },
    'cleanup': {
        'dry_run': True,
    },
}
