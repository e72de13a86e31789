from datetime import date
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class SexCode(int, Enum):
    MALE = 1
    FEMALE = 2


class EpisodeKind(str, Enum):
    AKI = "AKI"
    CKD = "CKD"


class AkiDefinition(str, Enum):
    NHS = "nhs"
    BIDIRECTIONAL = "bidirectional"


class DuplicatePolicy(str, Enum):
    MEAN = "mean"
    FIRST = "first"
    LAST = "last"
    ERROR = "error"


class Episode(BaseModel):
    """A maximal run of flagged days, with offsets counted from the baseline date."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    kind: EpisodeKind
    threshold: Optional[int] = None
    start_date: date
    stop_date: date
    start_offset_days: int
    stop_offset_days: int
    duration_days: int

    @model_validator(mode='after')
    def check_span(self):
        if self.start_offset_days > self.stop_offset_days:
            raise ValueError(
                f"Episode start ({self.start_offset_days}) is after stop ({self.stop_offset_days})"
            )
        if self.duration_days != self.stop_offset_days - self.start_offset_days:
            raise ValueError("duration_days must equal stop_offset_days - start_offset_days")
        if self.kind == EpisodeKind.CKD and self.threshold is None:
            raise ValueError("CKD episodes need an eGFR threshold")
        if self.kind == EpisodeKind.AKI and self.threshold is not None:
            raise ValueError("AKI episodes do not carry an eGFR threshold")
        return self

    def is_akd(self, min_duration_days: int = 7) -> bool:
        """AKI lasting longer than ``min_duration_days`` (acute kidney disease)."""
        return self.kind == EpisodeKind.AKI and self.duration_days > min_duration_days


class ThresholdProgression(BaseModel):
    model_config = ConfigDict(frozen=True)

    threshold: int
    sustained90day: int
    followupunder: int
    progression: int
    persontimedays: float
    persontimedays_notadjusted: float

    @field_validator('sustained90day', 'followupunder', 'progression')
    @classmethod
    def check_binary(cls, v: int) -> int:
        if v not in (0, 1):
            raise ValueError(f"flag must be 0 or 1, got {v}")
        return v

    @model_validator(mode='after')
    def check_progression(self):
        if self.progression != (self.sustained90day & self.followupunder):
            raise ValueError("progression must equal sustained90day AND followupunder")
        return self


class ProgressionRecord(BaseModel):
    """Per-patient CKD progression and person-time summary."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    max_follow_up_days: float
    akinhs_total_count: int = 0
    akinhslonger7days_count: int = 0
    last6months: Optional[float] = None
    last12months: Optional[float] = None
    thresholds: Dict[int, ThresholdProgression]

    @field_validator('akinhs_total_count', 'akinhslonger7days_count')
    @classmethod
    def check_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counts cannot be negative")
        return v

    def to_row(self) -> dict:
        """Flatten into one progression_summary row."""
        row = {
            'patient_id': self.patient_id,
            'max_follow_up_days': self.max_follow_up_days,
            'akinhs_total_count': self.akinhs_total_count,
            'akinhslonger7days_count': self.akinhslonger7days_count,
            'last6months': self.last6months,
            'last12months': self.last12months,
        }
        for t in sorted(self.thresholds):
            tp = self.thresholds[t]
            row[f'followupunder{t}'] = tp.followupunder
            row[f'sustained90day_{t}'] = tp.sustained90day
            row[f'ckd{t}_progression'] = tp.progression
            row[f'persontimedays_{t}'] = tp.persontimedays
            row[f'persontimedays_{t}_notadjusted'] = tp.persontimedays_notadjusted
        return row
