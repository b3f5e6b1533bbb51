from contractflow.schemas.aggregate import (
    ContractAggregate,
    VersionView,
    ApprovalStepView,
    AllocationView,
    RenewalRequestView,
    FeedbackView,
    CommentView,
    AuditEntryView,
    UserRef,
    CounterpartyRef,
    PropertyRef,
)
from contractflow.schemas.requests import (
    ContractCreateRequest,
    VersionSubmitRequest,
    TransitionRequest,
    SigningStatusRequest,
    RenewalDecisionRequest,
    RenewalNotesRequest,
    RenewalTermsUpdate,
    RenegotiationResult,
    StepOutcome,
    SweepReport,
    ApprovalRequestBody,
    StepDecisionRequest,
    CommentCreateRequest,
    CommentResolveRequest,
    FeedbackCreateRequest,
    CounterpartyCreateRequest,
    CounterpartyView,
    PropertyCreateRequest,
    PropertyView,
    NotificationView,
    NotificationReadRequest,
)
