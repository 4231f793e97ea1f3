#!/usr/bin/env python3
"""
Interaction prediction models for ProtoView
Defines the stored prediction record, its subject key and the confidence tiers
"""
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Dict, Any

from protoview.exceptions import MalformedRecordError
from protoview.utils.numeric import to_float, to_int, or_zero, check_number, check_range

UNIPROT_ACCESSION = re.compile(r"[OPQAB][0-9][A-Z0-9]{4}", re.IGNORECASE)
COMPLEX_SEPARATOR = "+"


class ConfidenceTier(str, Enum):
    """Discrete confidence tier; values match the database enum labels"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    VERY_LOW = "Very Low"

    @classmethod
    def from_value(cls, value: Any) -> Optional['ConfidenceTier']:
        if value is None or isinstance(value, ConfidenceTier):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise MalformedRecordError(f"Unknown confidence tier: {value!r}",
                                       {"value": value}) from e


class Scheme(str, Enum):
    """Classification scheme: A scores ipSAE, B scores interface quality"""
    A = "A"
    B = "B"


@dataclass(frozen=True)
class SubjectKey:
    """Ordered (bait, prey) pair

    The bait is a tuple of accessions so fixed-order complexes share the
    type with single proteins. Reversed pairs are different keys.
    """
    bait: Tuple[str, ...]
    prey: str

    def __post_init__(self):
        if not self.bait or not all(self.bait) or not self.prey:
            raise MalformedRecordError("Subject key needs a bait and a prey",
                                       {"bait": self.bait, "prey": self.prey})

    @property
    def bait_key(self) -> str:
        return COMPLEX_SEPARATOR.join(self.bait)

    @property
    def prey_key(self) -> str:
        return self.prey

    @property
    def is_complex(self) -> bool:
        return len(self.bait) > 1

    @classmethod
    def of(cls, bait: Any, prey: str) -> 'SubjectKey':
        """Build a key from a bait string ('A+B' for complexes) or sequence"""
        if isinstance(bait, str):
            members = tuple(p.strip().upper() for p in bait.split(COMPLEX_SEPARATOR))
        else:
            members = tuple(str(p).strip().upper() for p in bait)
        return cls(members, (prey or "").strip().upper())

    @classmethod
    def parse(cls, directory_name: str) -> 'SubjectKey':
        """Derive the subject key from a prediction directory name

        Handles 'q9nvl8_and_p68363', complex runs named
        'q9nqc8_q9y366_with_a0avf1' (every accession before '_with_' is a
        bait member) and other names carrying two accessions.

        Args:
            directory_name: Name of the AlphaFold prediction directory

        Returns:
            SubjectKey instance

        Raises:
            MalformedRecordError: If no bait/prey pair can be found
        """
        name = (directory_name or "").strip()
        if "_with_" in name.lower():
            head, _, tail = name.lower().partition("_with_")
            bait = _unique_accessions(head)
            prey = [acc for acc in _unique_accessions(tail) if acc not in bait]
            if bait and prey:
                return cls(tuple(bait), prey[0])
        else:
            parts = name.lower().split("_and_")
            if len(parts) == 2 and parts[0].strip() and parts[1].strip():
                return cls((parts[0].strip().upper(),), parts[1].strip().upper())

            matches = [m.upper() for m in UNIPROT_ACCESSION.findall(name)]
            if len(matches) >= 2:
                return cls((matches[0],), matches[1])

        raise MalformedRecordError(f"Could not parse protein IDs from: {directory_name}",
                                   {"directory_name": directory_name})

    def __str__(self) -> str:
        return f"{self.bait_key} -> {self.prey_key}"


def _unique_accessions(text: str):
    seen = []
    for match in UNIPROT_ACCESSION.findall(text):
        acc = match.upper()
        if acc not in seen:
            seen.append(acc)
    return seen


IdentityKey = Tuple[SubjectKey, float, int]


@dataclass
class PredictionRecord:
    """One stored AlphaFold interaction prediction"""
    subject_key: SubjectKey
    iptm: float
    contacts_pae_lt_3: Optional[int] = None
    contacts_pae_lt_6: Optional[int] = None
    interface_plddt: Optional[float] = None
    confidence: Optional[ConfidenceTier] = None
    ipsae: Optional[float] = None
    ipsae_confidence: Optional[ConfidenceTier] = None
    ipsae_pae_cutoff: Optional[float] = None
    analysis_version: str = "v3"
    alphafold_version: str = "AF3"
    source_path: Optional[str] = None
    id: Optional[int] = None
    ingested_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Class label as written by the analysis pipeline; never stored
    reported_ipsae_class: Optional[str] = field(default=None, compare=False, repr=False)

    @property
    def has_ipsae(self) -> bool:
        return self.ipsae is not None

    @property
    def identity_key(self) -> IdentityKey:
        """(subject, iptm, contacts with null as 0); plDDT and provenance excluded"""
        return (self.subject_key, self.iptm, or_zero(self.contacts_pae_lt_3))

    def validate(self) -> bool:
        """Validate identity fields, value types and value ranges

        Returns:
            True if valid

        Raises:
            MalformedRecordError: If the subject key is missing, a metric is
                not a number, or a value is out of range
        """
        if not isinstance(self.subject_key, SubjectKey):
            raise MalformedRecordError("Record has no subject key",
                                       {"subject_key": repr(self.subject_key)})
        if self.iptm is None:
            raise MalformedRecordError("Record has no iptm", {"subject": str(self.subject_key)})
        for name in ("iptm", "ipsae", "ipsae_pae_cutoff", "interface_plddt"):
            check_number(getattr(self, name), name)
        for name in ("contacts_pae_lt_3", "contacts_pae_lt_6"):
            check_number(getattr(self, name), name, integral=True)
        check_range(self.iptm, 0.0, 1.0, "iptm")
        check_range(self.ipsae, 0.0, 1.0, "ipsae")
        check_range(self.interface_plddt, 0.0, 100.0, "interface_plddt")
        for name in ("contacts_pae_lt_3", "contacts_pae_lt_6"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise MalformedRecordError(f"Field {name} must not be negative",
                                           {"field": name, "value": value})
        if not isinstance(self.analysis_version, str) or not self.analysis_version.strip():
            raise MalformedRecordError("Record has no analysis version",
                                       {"subject": str(self.subject_key)})
        return True

    def copy(self, **changes) -> 'PredictionRecord':
        return replace(self, **changes)

    @classmethod
    def from_prediction(cls, prediction: Dict[str, Any], source_path: Optional[str] = None,
                        analysis_version: str = "v3", alphafold_version: str = "AF3",
                        default_pae_cutoff: float = 10.0) -> 'PredictionRecord':
        """Create a record from one entry of an analysis JSON document

        Args:
            prediction: Prediction dictionary ('directory_name' or 'bait'/'prey',
                'iptm', 'ipsae', 'ipsae_confidence_class', 'ipsae_pae_cutoff',
                'contacts_pae3', 'contacts_pae6', 'mean_interface_plddt')
            source_path: Provenance of the document
            analysis_version: Version tag of the analysis that produced it
            alphafold_version: AlphaFold generation ('AF2' or 'AF3')
            default_pae_cutoff: PAE cutoff assumed when a score carries none

        Returns:
            PredictionRecord instance with tiers unset

        Raises:
            MalformedRecordError: If identity fields are missing or numbers are unparseable
        """
        if not isinstance(prediction, dict):
            raise MalformedRecordError("Prediction must be an object",
                                       {"type": type(prediction).__name__})

        if prediction.get("bait") and prediction.get("prey"):
            subject = SubjectKey.of(prediction["bait"], prediction["prey"])
        elif prediction.get("directory_name"):
            subject = SubjectKey.parse(prediction["directory_name"])
        else:
            raise MalformedRecordError("Prediction has no directory_name or bait/prey",
                                       {"source_path": source_path})

        iptm = to_float(prediction.get("iptm"), "iptm")
        ipsae = to_float(prediction.get("ipsae"), "ipsae")
        pae_cutoff = to_float(prediction.get("ipsae_pae_cutoff"), "ipsae_pae_cutoff")
        if ipsae is not None and pae_cutoff is None:
            pae_cutoff = default_pae_cutoff

        record = cls(
            subject_key=subject,
            iptm=0.0 if iptm is None else iptm,
            contacts_pae_lt_3=to_int(prediction.get("contacts_pae3"), "contacts_pae3"),
            contacts_pae_lt_6=to_int(prediction.get("contacts_pae6"), "contacts_pae6"),
            interface_plddt=to_float(prediction.get("mean_interface_plddt"), "mean_interface_plddt"),
            ipsae=ipsae,
            ipsae_pae_cutoff=pae_cutoff if ipsae is not None else None,
            analysis_version=analysis_version,
            alphafold_version=alphafold_version,
            source_path=source_path,
            reported_ipsae_class=prediction.get("ipsae_confidence_class"),
        )
        record.validate()
        return record

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> 'PredictionRecord':
        """Create instance from database row

        Args:
            row: Database row as dictionary

        Returns:
            PredictionRecord instance
        """
        return cls(
            id=row.get('id'),
            subject_key=SubjectKey.of(row['bait_key'], row['prey_key']),
            iptm=row['iptm'],
            contacts_pae_lt_3=row.get('contacts_pae_lt_3'),
            contacts_pae_lt_6=row.get('contacts_pae_lt_6'),
            interface_plddt=row.get('interface_plddt'),
            confidence=ConfidenceTier.from_value(row.get('confidence')),
            ipsae=row.get('ipsae'),
            ipsae_confidence=ConfidenceTier.from_value(row.get('ipsae_confidence')),
            ipsae_pae_cutoff=row.get('ipsae_pae_cutoff'),
            analysis_version=row.get('analysis_version') or 'v3',
            alphafold_version=row.get('alphafold_version') or 'AF3',
            source_path=row.get('source_path'),
            ingested_at=row.get('ingested_at'),
            updated_at=row.get('updated_at'),
        )

    def to_db_dict(self) -> Dict[str, Any]:
        """Column values for insert or update; id and timestamps are left to the database"""
        return {
            'bait_key': self.subject_key.bait_key,
            'prey_key': self.subject_key.prey_key,
            'iptm': self.iptm,
            'contacts_pae_lt_3': self.contacts_pae_lt_3,
            'contacts_pae_lt_6': self.contacts_pae_lt_6,
            'interface_plddt': self.interface_plddt,
            'confidence': self.confidence.value if self.confidence else None,
            'ipsae': self.ipsae,
            'ipsae_confidence': self.ipsae_confidence.value if self.ipsae_confidence else None,
            'ipsae_pae_cutoff': self.ipsae_pae_cutoff,
            'analysis_version': self.analysis_version,
            'alphafold_version': self.alphafold_version,
            'source_path': self.source_path,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary

        Returns:
            Dictionary representation
        """
        data = {'id': self.id, **self.to_db_dict()}
        data['ingested_at'] = self.ingested_at.isoformat() if self.ingested_at else None
        data['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        return data
