"""Shared data models."""

from .visit import (
    CamelModel,
    FeeBreakdown,
    Gender,
    GenderBreakdown,
    OriginTag,
    TreatmentCount,
    VisitListResponse,
    VisitMutationResponse,
    VisitRecord,
    VisitSubmission,
    VisitSummary,
    classify_gender,
)

__all__ = [
    "CamelModel",
    "FeeBreakdown",
    "Gender",
    "GenderBreakdown",
    "OriginTag",
    "TreatmentCount",
    "VisitListResponse",
    "VisitMutationResponse",
    "VisitRecord",
    "VisitSubmission",
    "VisitSummary",
    "classify_gender",
]
