import enum
from sqlalchemy import Column, String, Integer, Text, JSON, Enum, UniqueConstraint
from .base import BaseModel


class DraftState(enum.Enum):
    PRISTINE = "pristine"
    STAGED = "staged"
    SAVING = "saving"
    SAVED = "saved"
    SAVE_FAILED = "save_failed"


class DraftEvent(enum.Enum):
    EDIT = "edit"
    SAVE = "save"
    SAVE_SUCCEEDED = "save_succeeded"
    SAVE_FAILED = "save_failed"
    RESET = "reset"


# Allowed transitions of the per-check review state machine
TRANSITIONS = {
    DraftState.PRISTINE: {
        DraftEvent.EDIT: DraftState.STAGED,
        DraftEvent.SAVE: DraftState.SAVING,
        DraftEvent.RESET: DraftState.PRISTINE,
    },
    DraftState.STAGED: {
        DraftEvent.EDIT: DraftState.STAGED,
        DraftEvent.SAVE: DraftState.SAVING,
        DraftEvent.RESET: DraftState.PRISTINE,
    },
    DraftState.SAVING: {
        DraftEvent.SAVE_SUCCEEDED: DraftState.SAVED,
        DraftEvent.SAVE_FAILED: DraftState.SAVE_FAILED,
    },
    DraftState.SAVED: {
        DraftEvent.EDIT: DraftState.STAGED,
        DraftEvent.SAVE: DraftState.SAVING,
        DraftEvent.RESET: DraftState.PRISTINE,
    },
    DraftState.SAVE_FAILED: {
        DraftEvent.EDIT: DraftState.STAGED,
        DraftEvent.SAVE: DraftState.SAVING,
        DraftEvent.RESET: DraftState.PRISTINE,
    },
}

# States whose staged values must survive a refresh from the server
DIRTY_STATES = (DraftState.STAGED, DraftState.SAVE_FAILED)


class InvalidTransition(Exception):
    def __init__(self, state: DraftState, event: DraftEvent):
        super().__init__(f"Cannot {event.value} a check in state {state.value}")
        self.state = state
        self.event = event


def next_state(state: DraftState, event: DraftEvent) -> DraftState:
    """Apply an event to a review state, raising on a disallowed move"""
    try:
        return TRANSITIONS[state][event]
    except KeyError:
        raise InvalidTransition(state, event)


class ReviewDraft(BaseModel):
    """One reviewer's edits for one check of one case, staged until saved"""
    __tablename__ = 'review_drafts'
    __table_args__ = (
        UniqueConstraint('case_id', 'user_id', 'check_key', name='uq_review_draft_case_user_check'),
    )

    case_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)  # reviewer the edits belong to
    check_key = Column(String(255), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Identity
    display_name = Column(String(255))
    check_type = Column(String(255))

    # State machine
    state = Column(Enum(DraftState), default=DraftState.PRISTINE, nullable=False)
    last_error = Column(Text)

    # Staged values
    status = Column(String(50), default='Pending')
    verified_data = Column(JSON)  # {sectionKey: {field: value}}
    comments = Column(JSON)  # working form, always {sectionKey: text}
    dirty = Column(JSON)  # ['status', 'verifiedData.<section>.<field>', 'comments.<section>'] touched since last sync

    # Last server-confirmed check, passed through untouched on other checks' saves
    server_check = Column(JSON)

    @property
    def is_dirty(self) -> bool:
        return self.state in DIRTY_STATES
