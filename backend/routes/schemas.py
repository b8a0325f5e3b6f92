# routes/schemas.py

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# Form fields arrive as strings; the normalizer does the parsing.
FieldValue = Optional[Union[float, str]]


class SubjectInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str = ""
    level: FieldValue = None
    final_percentage: FieldValue = Field(None, alias="finalPercentage")
    grade_average: FieldValue = Field(None, alias="gradeAverage")


class TermEntryRequest(BaseModel):
    grade: Optional[str] = None
    school: Optional[str] = None
    subjects: List[SubjectInput] = []


class TermAnalysisRequest(BaseModel):
    term: Optional[int] = None
    subjects: List[SubjectInput] = []


class TermReportRequest(BaseModel):
    term: int
    mode: str = "all"
    value: Optional[str] = None
    student_ids: List[str] = []
    format: str = "pdf"


class ProfileIntakeRequest(BaseModel):
    """Intake form fields. Fields left out fall back to the stored profile where it has them."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    school: Optional[str] = None
    grade: Optional[Union[int, str]] = None
    gender: Optional[str] = None
    population_group: Optional[str] = None
    high_school_situation: Optional[str] = None
    facilities: List[str] = []
    id_certificate: Optional[str] = None
    learner_cell_phone: Optional[str] = None
    learner_landline: Optional[str] = None
    parent_guardian_name: Optional[str] = None
    parent_guardian_contact: Optional[str] = None
    parent_guardian_landline: Optional[str] = None
    who_do_you_live_with: List[str] = []
    household_members: FieldValue = None
    family_members_occupation: Optional[str] = None
    original_essay: Optional[str] = None
    main_language: List[str] = []
    religious_affiliation: Optional[str] = None
    positive_impact: Optional[str] = None
    plans_after_school: Optional[str] = None
    career_interest: Optional[str] = None
    personality_statements: Optional[str] = None
    successful_community_member: Optional[str] = None
    tips_for_friend: Optional[str] = None
    kimberley_challenges: Optional[str] = None
