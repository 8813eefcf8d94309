"""
# Club Platform Models

This module defines the **data structures** of the ClubSphere platform: principals,
clubs, memberships, events, manager applications and the derived role grants.

## Domain Model Overview

1.  **Principal** (`users`): one record per identity, keyed by email, carrying a
    denormalized `globalRole`.
2.  **Club** (`clubs`): owned by the principal that created it (`ownerEmail`, immutable).
3.  **Membership** (`memberships`): a principal's request to join a club.
4.  **Event** (`events`): organised by a club.
5.  **ManagerApplication** (`manager_applications`): a request to become a club manager.
6.  **RoleGrant** (`role_grants`): derived per-club role, written only by the
    consistency propagator when a membership becomes active.

## Approval Workflows

| Entity | States | Transitions |
|---|---|---|
| Club | pending, approved, rejected | pending → approved / rejected |
| Event | pending, approved, rejected | pending → approved / rejected |
| Membership | pending, active, rejected | pending → active / rejected |
| ManagerApplication | pending, approved, rejected | pending → approved / rejected, rejected → pending |

## Storage Shape

Documents are stored with camelCase field names (`clubName`, `ownerEmail`,
`userEmail`). Models expose snake_case attributes with camelCase aliases and
accept either form on input; responses are serialized by alias.

Request models that reach storage forbid unknown fields, so a client can never
smuggle `ownerEmail`, `status` or `globalRole` into a write.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator


class GlobalRole(str, Enum):
    """
    Platform-wide role of a principal.

    *   **MEMBER**: Default role for every registered user.
    *   **CLUB_MANAGER**: Granted when a manager application is approved.
    *   **SUPER_ADMIN**: Platform administrator; approves clubs, events and applications.
    """
    MEMBER = "member"
    CLUB_MANAGER = "club_manager"
    SUPER_ADMIN = "super_admin"


class ClubStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class ApplicationStatus(str, Enum):
    """
    Manager application status.

    `APPROVED` is a sink. `REJECTED` can return to `PENDING` when the applicant re-applies.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClubRole(str, Enum):
    """Club-scoped role carried by a role grant."""
    MEMBER = "member"


class PaymentType(str, Enum):
    MEMBERSHIP = "membership"
    EVENT = "event"


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    CANCELLED = "cancelled"


# Base models

class MongoModel(BaseModel):
    """Base for models read from MongoDB: maps `_id` to a string `id`."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: Optional[str] = Field(None, alias="_id", description="Document identifier")

    @field_validator("id", mode="before")
    @classmethod
    def stringify_object_id(cls, v: Any) -> Any:
        if isinstance(v, ObjectId):
            return str(v)
        return v


class PatchModel(BaseModel):
    """Base for client-supplied bodies: unknown fields are rejected."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# Document / response models

class PrincipalResponse(MongoModel):
    """A registered user and their global role."""
    email: str
    name: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")
    global_role: GlobalRole = Field(GlobalRole.MEMBER, alias="globalRole")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class ClubResponse(MongoModel):
    club_name: str = Field(..., alias="clubName")
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    banner_image: Optional[str] = Field(None, alias="bannerImage")
    membership_fee: float = Field(0, alias="membershipFee")
    owner_email: str = Field(..., alias="ownerEmail")
    status: ClubStatus
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class MembershipResponse(MongoModel):
    club_id: str = Field(..., alias="clubId")
    user_email: str = Field(..., alias="userEmail")
    status: MembershipStatus
    payment_id: Optional[str] = Field(None, alias="paymentId")
    joined_at: Optional[datetime] = Field(None, alias="joinedAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class EventResponse(MongoModel):
    club_id: str = Field(..., alias="clubId")
    title: str
    description: Optional[str] = None
    event_date: Optional[datetime] = Field(None, alias="eventDate")
    location: Optional[str] = None
    is_paid: bool = Field(False, alias="isPaid")
    event_fee: float = Field(0, alias="eventFee")
    max_attendees: Optional[int] = Field(None, alias="maxAttendees")
    status: EventStatus
    created_by: Optional[str] = Field(None, alias="createdBy")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class ManagerApplicationResponse(MongoModel):
    email: str
    name: Optional[str] = None
    reason: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")
    status: ApplicationStatus
    applied_at: Optional[datetime] = Field(None, alias="appliedAt")
    reviewed_by: Optional[str] = Field(None, alias="reviewedBy")
    reviewed_at: Optional[datetime] = Field(None, alias="reviewedAt")


class EventRegistrationResponse(MongoModel):
    event_id: str = Field(..., alias="eventId")
    club_id: str = Field(..., alias="clubId")
    user_email: str = Field(..., alias="userEmail")
    status: RegistrationStatus = RegistrationStatus.REGISTERED
    payment_id: Optional[str] = Field(None, alias="paymentId")
    registered_at: Optional[datetime] = Field(None, alias="registeredAt")


class PaymentResponse(MongoModel):
    user_email: str = Field(..., alias="userEmail")
    amount: float
    type: PaymentType
    club_id: Optional[str] = Field(None, alias="clubId")
    event_id: Optional[str] = Field(None, alias="eventId")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    status: str = "completed"
    created_at: Optional[datetime] = Field(None, alias="createdAt")


# Request models

class RegisterUserRequest(PatchModel):
    """Profile fields a user may set on registration. Email and role come from the server."""
    name: Optional[str] = Field(None, max_length=100)
    photo_url: Optional[str] = Field(None, alias="photoURL")


class CreateClubRequest(PatchModel):
    club_name: str = Field(..., alias="clubName", min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=200)
    banner_image: Optional[str] = Field(None, alias="bannerImage")
    membership_fee: float = Field(0, alias="membershipFee", ge=0)


class UpdateClubRequest(PatchModel):
    """
    Fields a club owner may change.

    `ownerEmail` and `status` are deliberately absent: ownership is immutable and
    status changes only through the approval workflow.
    """
    club_name: Optional[str] = Field(None, alias="clubName", min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=200)
    banner_image: Optional[str] = Field(None, alias="bannerImage")
    membership_fee: Optional[float] = Field(None, alias="membershipFee", ge=0)

    @field_validator("club_name", "membership_fee")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    def to_update(self) -> Dict[str, Any]:
        """Storage `$set` document with only the fields the client sent."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class CreateEventRequest(PatchModel):
    club_id: str = Field(..., alias="clubId")
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    event_date: datetime = Field(..., alias="eventDate")
    location: Optional[str] = Field(None, max_length=200)
    is_paid: bool = Field(False, alias="isPaid")
    event_fee: float = Field(0, alias="eventFee", ge=0)
    max_attendees: Optional[int] = Field(None, alias="maxAttendees", gt=0)


class CreateMembershipRequest(PatchModel):
    club_id: str = Field(..., alias="clubId", min_length=1)
    payment_id: Optional[str] = Field(None, alias="paymentId")


class CreateEventRegistrationRequest(PatchModel):
    event_id: str = Field(..., alias="eventId", min_length=1)
    club_id: str = Field(..., alias="clubId", min_length=1)
    payment_id: Optional[str] = Field(None, alias="paymentId")


class RecordPaymentRequest(PatchModel):
    amount: float = Field(..., gt=0)
    type: PaymentType
    club_id: Optional[str] = Field(None, alias="clubId")
    event_id: Optional[str] = Field(None, alias="eventId")
    transaction_id: Optional[str] = Field(None, alias="transactionId")


class ManagerApplicationRequest(PatchModel):
    """Applicant-editable fields. The application email is taken from the verified token."""
    name: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1, max_length=2000)
    photo_url: Optional[str] = Field(None, alias="photoURL")


class StatusTransitionRequest(BaseModel):
    """
    Body of the approval endpoints.

    Only `status` is read. Any other field (an `email`, an `ownerEmail`) is ignored:
    the transition writes nothing but the status, and side effects read the persisted record.
    """
    model_config = ConfigDict(extra="ignore")

    status: str = Field(..., min_length=1, description="Requested status")


# Transition results

class PropagationFailure(BaseModel):
    side_effect: str
    reason: str


class PropagationReportResponse(BaseModel):
    ok: bool = True
    applied: List[str] = Field(default_factory=list)
    failures: List[PropagationFailure] = Field(default_factory=list)


class TransitionResponse(BaseModel):
    """
    Result of an approval action.

    `propagation.ok` is False when the status change committed but a derived write
    (role grant, global role) did not; `warnings` then describes the drift that the
    reconciliation pass will repair.
    """
    entity: str
    id: str
    previous_status: str
    status: str
    side_effects: List[str] = Field(default_factory=list)
    propagation: Optional[PropagationReportResponse] = None
    warnings: List[str] = Field(default_factory=list)
    document: Dict[str, Any] = Field(default_factory=dict)


class LeaveClubResponse(BaseModel):
    membership_id: str
    club_id: str
    deleted: bool = True
    role_grant_retained: bool


class DriftReportResponse(BaseModel):
    memberships_missing_grants: List[Dict[str, Any]] = Field(default_factory=list)
    applications_missing_promotion: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.memberships_missing_grants) + len(self.applications_missing_promotion)


class ReconciliationResponse(BaseModel):
    dry_run: bool = False
    role_grants_repaired: int = 0
    promotions_repaired: int = 0
    failures: List[PropagationFailure] = Field(default_factory=list)
    drift: DriftReportResponse = Field(default_factory=DriftReportResponse)
