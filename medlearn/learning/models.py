from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum

# ==================== ENUMS ====================

class SessionType(str, Enum):
    DICOM = "Dicom"
    VIMEO = "Vimeo"
    LIVE = "Live"
    ASSESSMENT = "Assessment"

    @classmethod
    def normalize(cls, value) -> "SessionType":
        """Accept stored/legacy spellings ("Zoom" is a live program)"""
        if isinstance(value, cls):
            return value
        value = str(value or "").strip()
        if value.lower() == "zoom":
            return cls.LIVE
        for member in cls:
            if member.value.lower() == value.lower():
                return member
        raise ValueError(f"Invalid session type: {value!r}")

class AccessLevel(str, Enum):
    GUEST = "guest"
    LOGGED_IN = "loggedIn"
    SUBSCRIBED = "subscribed"

class SessionStatus(str, Enum):
    NOT_STARTED = "notstarted"
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"

class Belt(str, Enum):
    WHITE = "White"
    YELLOW = "Yellow"
    GREEN = "Green"
    BLUE = "Blue"
    BROWN = "Brown"
    BLACK = "Black"

class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUALLY = "biannually"
    YEARLY = "yearly"

class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    COMPLETED = "completed"

# Progress records name the content kind differently from sessions
PROGRESS_MODEL_TYPES = {
    SessionType.DICOM: "DicomCase",
    SessionType.VIMEO: "RecordedLecture",
    SessionType.LIVE: "LiveProgram",
}

# ==================== CONTENT MODELS ====================

class FacultyRef(BaseModel):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None

class ContentItem(BaseModel):
    """A unit of learning content as the access and ranking logic sees it."""

    id: str
    title: str = ""
    description: Optional[str] = None
    session_type: SessionType
    is_free: bool = False
    created_at: Optional[datetime] = None

    module_id: Optional[str] = None
    module_name: Optional[str] = None
    pathology_id: Optional[str] = None
    pathology_name: Optional[str] = None
    difficulty: Optional[str] = None
    faculty: List[FacultyRef] = []

    image_url_1920x1080: Optional[str] = None
    image_url_522x760: Optional[str] = None
    sponsored: bool = False
    resource_links: List[str] = []

    # Live schedule
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    # DICOM case
    is_assessment: Optional[bool] = None
    dicom_study_id: Optional[str] = None
    dicom_case_id: Optional[str] = None
    dicom_case_video_url: Optional[str] = None
    case_access_type: Optional[str] = None

    # Recorded lecture
    session_duration: Optional[str] = None
    vimeo_video_id: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None

    # Live program
    live_program_type: Optional[str] = None
    zoom_meeting_id: Optional[str] = None
    zoom_password: Optional[str] = None
    zoom_join_url: Optional[str] = None
    zoom_backup_link: Optional[str] = None
    vimeo_live_url: Optional[str] = None

    # Ranking aggregates
    average_rating: float = 0.0
    num_of_reviews: int = 0
    last_review_at: Optional[datetime] = None
    total_views: Optional[int] = None

    @field_validator("session_type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return SessionType.normalize(v)

    @field_validator("faculty", mode="before")
    @classmethod
    def _faculty_refs(cls, v):
        if not v:
            return []
        return [{"id": str(f)} if not isinstance(f, (dict, FacultyRef)) else f for f in v]

    @classmethod
    def from_document(cls, doc: dict) -> "ContentItem":
        """Build from a stored session document"""
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = data.pop("session_id", None) or data.get("id")
        return cls.model_validate(data)

class ViewerAccess(BaseModel):
    is_logged_in: bool = False
    is_subscribed: bool = False

    @property
    def level(self) -> AccessLevel:
        if self.is_subscribed:
            return AccessLevel.SUBSCRIBED
        if self.is_logged_in:
            return AccessLevel.LOGGED_IN
        return AccessLevel.GUEST

class ControlledItem(BaseModel):
    """ContentItem fields plus the viewer specific lock state.

    Locked items only carry the safelisted preview fields.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    is_locked: bool
    access_level: AccessLevel
    lock_reason: Optional[str] = None

# ==================== SESSION MODELS ====================

class SessionCreate(BaseModel):
    title: str
    session_type: str
    description: Optional[str] = None
    module_id: Optional[str] = None
    module_name: Optional[str] = None
    pathology_id: Optional[str] = None
    pathology_name: Optional[str] = None
    difficulty: Optional[str] = None
    is_free: bool = False
    sponsored: bool = False
    image_url_1920x1080: Optional[str] = None
    image_url_522x760: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    resource_links: List[str] = []
    faculty: List[str] = []
    is_assessment: Optional[bool] = None
    dicom_study_id: Optional[str] = None
    dicom_case_id: Optional[str] = None
    dicom_case_video_url: Optional[str] = None
    case_access_type: Optional[str] = None
    session_duration: Optional[str] = None
    vimeo_video_id: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None
    live_program_type: Optional[str] = None
    zoom_meeting_id: Optional[str] = None
    zoom_password: Optional[str] = None
    zoom_join_url: Optional[str] = None
    zoom_backup_link: Optional[str] = None
    vimeo_live_url: Optional[str] = None

class SessionUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    module_id: Optional[str] = None
    module_name: Optional[str] = None
    pathology_id: Optional[str] = None
    pathology_name: Optional[str] = None
    difficulty: Optional[str] = None
    is_free: Optional[bool] = None
    sponsored: Optional[bool] = None
    image_url_1920x1080: Optional[str] = None
    image_url_522x760: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    resource_links: Optional[List[str]] = None
    is_assessment: Optional[bool] = None
    dicom_study_id: Optional[str] = None
    dicom_case_id: Optional[str] = None
    dicom_case_video_url: Optional[str] = None
    case_access_type: Optional[str] = None
    session_duration: Optional[str] = None
    vimeo_video_id: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None
    live_program_type: Optional[str] = None
    zoom_meeting_id: Optional[str] = None
    zoom_password: Optional[str] = None
    zoom_join_url: Optional[str] = None
    zoom_backup_link: Optional[str] = None
    vimeo_live_url: Optional[str] = None

class FacultyUpdate(BaseModel):
    faculty_ids: List[str]

class SessionViewTrack(BaseModel):
    session_id: str
    module_id: Optional[str] = None

# ==================== PROGRESS MODELS ====================

class LectureProgressUpdate(BaseModel):
    session_id: str
    current_time: float = Field(..., ge=0)
    duration: Optional[float] = Field(None, ge=0)

class DicomAction(BaseModel):
    session_id: str

class SessionProgress(BaseModel):
    status: SessionStatus
    current_time: Optional[float] = None
    last_watched_at: Optional[datetime] = None
    completion_percentage: Optional[float] = None
    is_completed: bool = False

# ==================== CATALOG MODELS ====================

class ModuleCreate(BaseModel):
    module_name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    assessment: bool = False

class ModuleUpdate(BaseModel):
    module_name: Optional[str] = None
    description: Optional[str] = None

class PathologyCreate(BaseModel):
    pathology_name: str
    description: Optional[str] = None
    image_url: Optional[str] = None

class PathologyUpdate(BaseModel):
    pathology_name: Optional[str] = None
    description: Optional[str] = None

class FacultyCreate(BaseModel):
    name: str
    designation: Optional[str] = None
    image: Optional[str] = None
    bio: Optional[str] = None

# ==================== REVIEW MODELS ====================

class ReviewCreate(BaseModel):
    item_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None

# ==================== OBSERVATION MODELS ====================

class ObservationCreate(BaseModel):
    session_id: str
    observation_text: str
    module: Optional[str] = None

class FacultyObservation(BaseModel):
    faculty_observation: str

class UserObservation(BaseModel):
    observation_id: str
    user_observation: str

class UserObservationBatch(BaseModel):
    session_id: Optional[str] = None
    observations: List[UserObservation]

# ==================== ASSESSMENT MODELS ====================

class AssessmentCreate(BaseModel):
    session_id: str
    question_text: str = Field(..., min_length=1)
    faculty_answer: str = ""
    module: str
    max_points: int = Field(10, ge=0)

    @field_validator("question_text", "faculty_answer", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

class AssessmentAnswer(BaseModel):
    assessment_id: str
    user_answer: str = Field(..., min_length=1)

# ==================== SUBSCRIPTION MODELS ====================

class PricingOption(BaseModel):
    billing_cycle: BillingCycle
    amount: float = Field(..., ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    original_amount: Optional[float] = None
    currency: str = "USD"

class PackageCreate(BaseModel):
    package_name: str
    pricing_options: List[PricingOption]
    is_active: bool = True
    description: Optional[str] = None
    features: Dict[str, Any] = {}
    display_order: Optional[int] = None

    @field_validator("pricing_options")
    @classmethod
    def unique_cycles(cls, v):
        cycles = [p.billing_cycle for p in v]
        if not cycles:
            raise ValueError("At least one pricing option is required")
        if len(cycles) != len(set(cycles)):
            raise ValueError("Duplicate billing cycles are not allowed for the same package")
        return v

class SubscriptionCreate(BaseModel):
    package_id: str
    billing_cycle: BillingCycle
    transaction_id: str = Field(..., min_length=1)
    payment_gateway: Optional[str] = None
    auto_renew: bool = False

class SubscriptionRenew(BaseModel):
    transaction_id: str = Field(..., min_length=1)

class AutoRenewToggle(BaseModel):
    auto_renew: bool
