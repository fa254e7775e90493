"""Session lifecycle and membership management.

This module creates sessions together with their host participant, direct
invitations and invite code, controls who may see and join a session, and
tracks each participant's hand-off progress.

Session creation spans several tables without a database transaction. Every
step commits on its own; when a later step fails, the rows written by earlier
steps are deleted again in reverse order before the error is raised.
"""

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Union

import pytz
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

import config
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    SessionFullError,
    ValidationError,
)
from models.activity_record import ActivityRecordModel
from models.session import SessionModel
from models.session_invite import SessionInviteModel
from models.session_invited_user import SessionInvitedUserModel
from models.session_participant import SessionParticipantModel
from schemas.activity import FavoriteExperience, NormalizedActivityLink
from schemas.session import (
    HANDOFF_STATES,
    VISIBILITIES,
    HandoffStateInfo,
    InvitePreview,
    Pagination,
    SessionDetail,
    SessionInfo,
    SessionListResponse,
    SessionSummary,
    SessionWithInvite,
)
from utils import invite_codes
from utils.compensation import CompensationStack
from utils.converters import (
    model_to_activity,
    model_to_session_info,
    models_to_participants,
    parse_iso,
    to_iso,
    utc_now_iso,
)
from utils.favorites_manager import FavoritesManager
from utils.friendship_manager import FriendshipManager
from utils.link_normalizer import ActivityLinkNormalizer
from utils.session_access import FriendshipOracle, SessionAccessPolicy
from utils.user_manager import UserManager

logger = logging.getLogger(__name__)


class LinkResolver(Protocol):
    def normalize(self, url: str) -> NormalizedActivityLink: ...


class MetadataEnrichment(Protocol):
    def enrich(self, activity_id: str) -> None: ...


class Notifier(Protocol):
    def send_invite(
        self,
        user_id: str,
        session_id: str,
        title: str,
        host_display_name: Optional[str] = None,
    ) -> None: ...


class FavoritesReader(Protocol):
    def get_cached_favorites(self, user_id: str) -> List[FavoriteExperience]: ...


@dataclass(frozen=True)
class SchemaCapabilities:
    """What the connected schema generation supports; decided at startup."""

    handoff_state: bool = True

    @classmethod
    def from_config(cls) -> "SchemaCapabilities":
        return cls(handoff_state=config.SCHEMA_HANDOFF_STATE_SUPPORTED)


def run_best_effort(description: str, fn: Callable[..., Any], *args: Any) -> None:
    """Call a collaborator whose failure must never reach the caller."""
    try:
        fn(*args)
    except Exception as exc:
        logger.warning("%s failed: %s", description, exc)


def run_inline(fn: Callable[..., Any], *args: Any) -> None:
    fn(*args)


class SessionManager:
    """Manages session, participant and invite operations using SQLAlchemy."""

    def __init__(
        self,
        db: DBSession,
        link_resolver: Optional[LinkResolver] = None,
        friendship_oracle: Optional[FriendshipOracle] = None,
        enrichment: Optional[MetadataEnrichment] = None,
        notifier: Optional[Notifier] = None,
        favorites: Optional[FavoritesReader] = None,
        dispatch: Optional[Callable[..., None]] = None,
        capabilities: Optional[SchemaCapabilities] = None,
        code_generator: Callable[[], str] = invite_codes.generate_invite_code,
        rng: Optional[random.Random] = None,
    ):
        """Initialize SessionManager.

        Args:
            db: SQLAlchemy Session.
            link_resolver: Turns activity URLs into canonical identifiers.
            friendship_oracle: Answers friendship questions for visibility.
            enrichment: Optional metadata enrichment, called fire-and-forget.
            notifier: Optional invite notifier, called fire-and-forget.
            favorites: Reader for cached favorites used by quick play.
            dispatch: Schedules fire-and-forget work, e.g.
                ``BackgroundTasks.add_task``. Runs it inline when omitted.
            capabilities: Schema capabilities of the connected database.
            code_generator: Produces invite codes.
            rng: Random source for quick play selection.
        """
        self.db = db
        self.link_resolver = link_resolver or ActivityLinkNormalizer()
        self.friendship_oracle = friendship_oracle or FriendshipManager(db)
        self.enrichment = enrichment
        self.notifier = notifier
        self.favorites = favorites or FavoritesManager(db)
        self.capabilities = capabilities or SchemaCapabilities.from_config()
        self._dispatch = dispatch or run_inline
        self._generate_code = code_generator
        self._rng = rng or random.Random()
        self.access = SessionAccessPolicy(db, self.friendship_oracle)
        self.users = UserManager(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_session(
        self,
        host_id: str,
        activity_url: str,
        title: str,
        visibility: str = "public",
        max_participants: Optional[int] = None,
        scheduled_start: Union[datetime, str, None] = None,
        invited_external_ids: Optional[Sequence[Any]] = None,
        description: Optional[str] = None,
        invite_max_uses: Optional[int] = None,
        invite_expires_at: Union[datetime, str, None] = None,
    ) -> SessionWithInvite:
        """Create a session with its host participant, invitations and invite code.

        Args:
            host_id: User creating and hosting the session.
            activity_url: Any supported link to the activity.
            title: Session title.
            visibility: 'public', 'friends' or 'invite_only'.
            max_participants: Capacity including the host. Defaults to one
                seat for the host plus one per invited account.
            scheduled_start: Planned start; the session starts 'scheduled'
                when given, 'active' otherwise.
            invited_external_ids: Platform account ids invited directly.
            description: Optional free text.
            invite_max_uses: Optional redemption limit of the invite code.
            invite_expires_at: Optional expiry of the invite code.

        Returns:
            SessionWithInvite holding the session and its invite link.

        Raises:
            ValidationError: If the input or the activity URL is invalid.
            InternalError: If a store write fails; earlier rows are removed.
        """
        if not host_id:
            raise ValidationError("host_id is required to create a session")
        title = (title or "").strip()
        if not title:
            raise ValidationError("Session title cannot be empty")
        if visibility not in VISIBILITIES:
            raise ValidationError(f"Unknown visibility '{visibility}'")

        invited_ids = self._clean_external_ids(invited_external_ids)
        if max_participants is None:
            max_participants = max(1, 1 + len(invited_ids))
        if max_participants < 1 or max_participants > config.MAX_PARTICIPANTS_LIMIT:
            raise ValidationError(
                f"max_participants must be between 1 and {config.MAX_PARTICIPANTS_LIMIT}"
            )
        scheduled_iso = self._to_iso_or_none(scheduled_start, "scheduled_start")
        invite_expires_iso = self._to_iso_or_none(invite_expires_at, "invite_expires_at")

        # Step 1: resolve the activity link; nothing is written on failure
        try:
            link = self.link_resolver.normalize(activity_url)
        except ValidationError:
            raise
        except Exception as exc:
            raise ValidationError(str(exc) or "Invalid activity URL") from exc

        # Step 2: shared, idempotent activity record
        activity = self._upsert_activity_record(link)

        compensation = CompensationStack("create_session")
        session_id = str(uuid.uuid4())
        now = utc_now_iso()

        # Step 3: session row
        session_model = SessionModel(
            id=session_id,
            activity_id=link.activity_id,
            host_id=host_id,
            title=title,
            description=description,
            visibility=visibility,
            status="scheduled" if scheduled_iso else "active",
            max_participants=max_participants,
            scheduled_start=scheduled_iso,
            original_input_url=link.original_input_url,
            normalized_from=link.normalized_from,
            created_at=now,
            updated_at=now,
        )
        self._write(
            lambda: self._insert_session(session_model),
            compensation,
            "Failed to create session",
        )
        compensation.push("delete session", lambda: self._delete_session_row(session_id))

        # Step 4: host participant
        self._write(
            lambda: self._insert_host_participant(session_id, host_id, now),
            compensation,
            "Failed to add host participant",
        )
        compensation.push(
            "delete participants", lambda: self._delete_participants(session_id)
        )

        # Step 5: direct invitations, resolved to participants where possible
        invited_user_ids: List[str] = []
        if invited_ids:
            self._write(
                lambda: self._insert_invited_users(session_id, invited_ids, now),
                compensation,
                "Failed to store invited users",
            )
            compensation.push(
                "delete invited users", lambda: self._delete_invited_users(session_id)
            )
            invited_user_ids = self._add_invited_participants(session_id, host_id, invited_ids)

        # Step 6: invite code
        code = self._create_invite(
            session_id, host_id, now, invite_max_uses, invite_expires_iso, compensation
        )

        logger.info(
            "Created session %s (activity=%s, host=%s, invited=%d)",
            session_id,
            link.activity_id,
            host_id,
            len(invited_user_ids),
        )

        # Step 7: fire-and-forget collaborators
        self._schedule_followups(link.activity_id, session_id, title, host_id, invited_user_ids)

        session_info = SessionInfo(
            id=session_id,
            activity_id=link.activity_id,
            host_id=host_id,
            title=title,
            description=description,
            visibility=visibility,
            status=session_model.status,
            max_participants=max_participants,
            current_participants=1,
            scheduled_start=scheduled_iso,
            activity=activity,
            created_at=now,
        )
        return SessionWithInvite(
            session=session_info, invite_link=config.build_invite_link(code)
        )

    def create_quick_session(self, user_id: str) -> SessionWithInvite:
        """Create a session for a randomly chosen cached favorite activity.

        Raises:
            ValidationError: If the user has no cached favorites.
        """
        favorites = self.favorites.get_cached_favorites(user_id)
        if not favorites:
            raise ValidationError(
                "No favorite activities cached; refresh favorites before quick play"
            )
        favorite = self._rng.choice(list(favorites))
        activity_url = favorite.url or config.ACTIVITY_WEB_URL_TEMPLATE.format(
            activity_id=favorite.id
        )
        title = f"Quick play: {favorite.name}"[: config.MAX_TITLE_LENGTH]
        logger.info("Quick play for user %s picked activity %s", user_id, favorite.id)
        return self.create_session(
            host_id=user_id,
            activity_url=activity_url,
            title=title,
            visibility=config.QUICK_SESSION_VISIBILITY,
            max_participants=config.QUICK_SESSION_MAX_PARTICIPANTS,
            scheduled_start=datetime.now(pytz.utc),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session_by_id(
        self, session_id: str, requester_id: Optional[str] = None
    ) -> Optional[SessionDetail]:
        """Read a session with its participants.

        Returns:
            SessionDetail, or None when the session does not exist or the
            requester may not see it.
        """
        model = self._get_model(session_id)
        if model is None:
            return None
        if not self.access.can_view(model, requester_id):
            logger.debug("Session %s hidden from requester %s", session_id, requester_id)
            return None
        return self._build_detail(model)

    def get_session_summary(
        self, session_id: str, requester_id: Optional[str] = None
    ) -> SessionSummary:
        """Count participants per hand-off state.

        Raises:
            NotFoundError: If the session is missing or hidden from the requester.
        """
        model = self._get_model(session_id)
        if model is None or not self.access.can_view(model, requester_id):
            raise NotFoundError("Session", session_id)

        counts = {state: 0 for state in HANDOFF_STATES}
        joined = self._joined_participants(session_id)
        for participant in joined:
            state = participant.handoff_state if self.capabilities.handoff_state else "rsvp_joined"
            counts[state] = counts.get(state, 0) + 1

        return SessionSummary(
            session_id=session_id,
            current_participants=len(joined),
            max_participants=model.max_participants,
            handoff_counts=counts,
        )

    def list_sessions(
        self,
        requester_id: Optional[str] = None,
        status: str = "active",
        visibility: Optional[str] = None,
        activity_id: Optional[str] = None,
        host_id: Optional[str] = None,
        limit: int = config.DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> SessionListResponse:
        """List sessions visible to the requester, soonest first."""
        limit = max(1, min(limit, config.MAX_LIST_LIMIT))
        offset = max(0, offset)

        query = self.db.query(SessionModel).filter(
            SessionModel.status == status,
            SessionModel.archived_at.is_(None),
        )
        if visibility:
            query = query.filter(SessionModel.visibility == visibility)
        if activity_id:
            query = query.filter(SessionModel.activity_id == activity_id)
        if host_id:
            query = query.filter(SessionModel.host_id == host_id)
        query = query.filter(self._visible_to(requester_id))

        total = query.count()
        models = (
            query.order_by(
                SessionModel.scheduled_start.is_(None),
                SessionModel.scheduled_start.asc(),
                SessionModel.created_at.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        counts = self._joined_counts([m.id for m in models])
        sessions = [model_to_session_info(m, counts.get(m.id, 0)) for m in models]
        return SessionListResponse(
            sessions=sessions,
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + limit < total,
            ),
        )

    def get_invite_preview(self, code: str) -> InvitePreview:
        """Describe the session behind an invite code.

        Raises:
            NotFoundError: If the code is unknown.
        """
        invite = (
            self.db.query(SessionInviteModel)
            .filter(SessionInviteModel.code == code)
            .first()
        )
        if invite is None or invite.session is None:
            raise NotFoundError("Invite", code)
        session = invite.session
        return InvitePreview(
            session_id=session.id,
            title=session.title,
            activity=model_to_activity(session.activity, session.activity_id),
            current_participants=self._count_joined(session.id),
            max_participants=session.max_participants,
        )

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def join_session(
        self, session_id: str, user_id: str, invite_code: Optional[str] = None
    ) -> SessionDetail:
        """Join a session, optionally redeeming an invite code.

        Joining again while already joined returns the session unchanged.

        Raises:
            NotFoundError: If the session is missing or hidden from the user.
            ConflictError: If the session is over or the invite is unusable.
            SessionFullError: If the session is at capacity.
            InternalError: If a store write fails.
        """
        model = self._get_model(session_id)
        if model is None:
            raise NotFoundError("Session", session_id)

        if model.status in ("cancelled", "completed"):
            raise ConflictError("This session is no longer accepting participants")

        existing = self.access.get_participant(session_id, user_id)
        if existing is not None and existing.state == "joined":
            return self._build_detail(model)

        # A supplied code grants access; it is validated before any write
        if not invite_code and not self.access.can_view(model, user_id, existing):
            raise NotFoundError("Session", session_id)

        # Check-then-insert: concurrent joiners can both pass this check
        if self._count_joined(session_id) >= model.max_participants:
            raise SessionFullError(session_id)

        # Counted in the participant write's transaction; a failed write rolls it back
        if invite_code:
            self._redeem_invite(session_id, invite_code)

        now = utc_now_iso()
        try:
            if existing is not None:
                existing.state = "joined"
                # First-joined-at survives leave/rejoin
                existing.joined_at = existing.joined_at or now
                if self.capabilities.handoff_state:
                    existing.handoff_state = "rsvp_joined"
            else:
                participant = SessionParticipantModel(
                    session_id=session_id,
                    user_id=user_id,
                    role="member",
                    state="joined",
                    joined_at=now,
                )
                if self.capabilities.handoff_state:
                    participant.handoff_state = "rsvp_joined"
                self.db.add(participant)
            self.db.commit()
        except IntegrityError:
            # Another request inserted this user's row first
            self.db.rollback()
            current = self.access.get_participant(session_id, user_id)
            if current is None or current.state != "joined":
                raise InternalError("Failed to join session: concurrent update")
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to join session: {exc}") from exc

        logger.info("User %s joined session %s", user_id, session_id)
        self.db.expire_all()
        return self._build_detail(self._get_model(session_id))

    def update_handoff_state(
        self, session_id: str, user_id: str, handoff_state: str
    ) -> HandoffStateInfo:
        """Record a participant's client-reported hand-off progress.

        Any state may follow any other. With an older schema generation that
        lacks the column this is a successful no-op.

        Raises:
            ValidationError: If the state is unknown.
            NotFoundError: If the user has no participant row in the session.
        """
        if handoff_state not in HANDOFF_STATES:
            raise ValidationError(f"Unknown hand-off state '{handoff_state}'")

        participant = self.access.get_participant(session_id, user_id)
        if participant is None:
            raise NotFoundError("Participant", f"{session_id}/{user_id}")

        if not self.capabilities.handoff_state:
            logger.debug("Hand-off tracking unsupported by schema; ignoring update")
            return HandoffStateInfo(
                session_id=session_id, user_id=user_id, handoff_state=handoff_state
            )

        try:
            participant.handoff_state = handoff_state
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to update hand-off state: {exc}") from exc

        logger.info(
            "Hand-off state of %s in session %s is now %s", user_id, session_id, handoff_state
        )
        return HandoffStateInfo(
            session_id=session_id, user_id=user_id, handoff_state=handoff_state
        )

    # ------------------------------------------------------------------
    # Deletion (soft)
    # ------------------------------------------------------------------

    def delete_session(self, session_id: str, user_id: str) -> None:
        """Cancel a session. Only the host may do so.

        Raises:
            NotFoundError: If the session does not exist.
            ForbiddenError: If the user is not the host.
        """
        model = self._get_model(session_id)
        if model is None:
            raise NotFoundError("Session", session_id)
        if model.host_id != user_id:
            raise ForbiddenError("Only the host can delete this session")

        try:
            model.status = "cancelled"
            model.updated_at = utc_now_iso()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to delete session: {exc}") from exc
        logger.info("Cancelled session %s", session_id)

    def bulk_delete_sessions(self, session_ids: Iterable[str], user_id: str) -> int:
        """Cancel every listed session hosted by ``user_id``.

        Sessions hosted by others are skipped silently.

        Returns:
            Number of sessions actually cancelled.
        """
        ids = list(dict.fromkeys(str(sid) for sid in session_ids))
        if not ids:
            return 0

        models = self.db.query(SessionModel).filter(SessionModel.id.in_(ids)).all()
        owned = [m for m in models if m.host_id == user_id and m.status != "cancelled"]
        if not owned:
            return 0

        now = utc_now_iso()
        try:
            for model in owned:
                model.status = "cancelled"
                model.updated_at = now
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to delete sessions: {exc}") from exc

        logger.info(
            "User %s cancelled %d of %d requested sessions", user_id, len(owned), len(ids)
        )
        return len(owned)

    # ------------------------------------------------------------------
    # Creation steps
    # ------------------------------------------------------------------

    def _write(
        self,
        step: Callable[[], None],
        compensation: CompensationStack,
        failure_message: str,
    ) -> None:
        """Run one committed write; on failure undo earlier steps and raise."""
        try:
            step()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("%s: %s", failure_message, exc)
            compensation.unwind()
            raise InternalError(f"{failure_message}: {exc}") from exc

    def _upsert_activity_record(self, link: NormalizedActivityLink):
        now = utc_now_iso()
        try:
            record = self._get_activity(link.activity_id)
            if record is None:
                record = ActivityRecordModel(
                    activity_id=link.activity_id,
                    canonical_url=link.canonical_url,
                    start_url=link.start_url,
                    updated_at=now,
                )
                self.db.add(record)
                try:
                    self.db.commit()
                except IntegrityError:
                    # A concurrent creator inserted it first; converge on that row
                    self.db.rollback()
                    record = self._get_activity(link.activity_id)
                    if record is None:
                        raise
            if record.canonical_url != link.canonical_url or record.start_url != link.start_url:
                record.canonical_url = link.canonical_url
                record.start_url = link.start_url
                record.updated_at = now
                self.db.commit()
            return model_to_activity(record, link.activity_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to upsert activity record: {exc}") from exc

    def _insert_session(self, model: SessionModel) -> None:
        self.db.add(model)
        self.db.commit()

    def _insert_host_participant(self, session_id: str, host_id: str, now: str) -> None:
        participant = SessionParticipantModel(
            session_id=session_id,
            user_id=host_id,
            role="host",
            state="joined",
            joined_at=now,
        )
        if self.capabilities.handoff_state:
            participant.handoff_state = "rsvp_joined"
        self.db.add(participant)
        self.db.commit()

    def _insert_invited_users(
        self, session_id: str, external_ids: Sequence[str], now: str
    ) -> None:
        self.db.add_all(
            SessionInvitedUserModel(
                session_id=session_id, external_user_id=external_id, created_at=now
            )
            for external_id in external_ids
        )
        self.db.commit()

    def _insert_invited_participant(self, session_id: str, user_id: str) -> None:
        participant = SessionParticipantModel(
            session_id=session_id,
            user_id=user_id,
            role="member",
            state="invited",
        )
        if self.capabilities.handoff_state:
            participant.handoff_state = "rsvp_joined"
        self.db.add(participant)
        self.db.commit()

    def _add_invited_participants(
        self, session_id: str, host_id: str, external_ids: Sequence[str]
    ) -> List[str]:
        """Add invited participants for accounts that belong to known users.

        A failing insert for one user is logged and skipped.
        """
        added = []
        for user in self.users.get_users_by_external_ids(external_ids):
            user_id = user.user_id
            if user_id == host_id:
                continue
            try:
                self._insert_invited_participant(session_id, user_id)
                added.append(user_id)
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.warning(
                    "Skipping invited participant %s for session %s: %s",
                    user_id,
                    session_id,
                    exc,
                )
        return added

    def _create_invite(
        self,
        session_id: str,
        created_by: str,
        now: str,
        max_uses: Optional[int],
        expires_at: Optional[str],
        compensation: CompensationStack,
    ) -> str:
        """Insert the invite row, drawing a new code on a uniqueness collision."""
        last_error: Optional[Exception] = None
        for attempt in range(1, config.INVITE_CODE_MAX_ATTEMPTS + 1):
            code = self._generate_code()
            try:
                self.db.add(
                    SessionInviteModel(
                        code=code,
                        session_id=session_id,
                        created_by=created_by,
                        created_at=now,
                        expires_at=expires_at,
                        max_uses=max_uses,
                        uses_count=0,
                    )
                )
                self.db.commit()
                return code
            except IntegrityError as exc:
                self.db.rollback()
                last_error = exc
                if not self._invite_code_taken(code):
                    break
                logger.info("Invite code collision on attempt %d, regenerating", attempt)
            except SQLAlchemyError as exc:
                self.db.rollback()
                last_error = exc
                break

        logger.warning("Failed to create invite for session %s: %s", session_id, last_error)
        compensation.unwind()
        raise InternalError(f"Failed to create invite: {last_error}")

    def _invite_code_taken(self, code: str) -> bool:
        try:
            return (
                self.db.query(SessionInviteModel.code)
                .filter(SessionInviteModel.code == code)
                .first()
                is not None
            )
        except SQLAlchemyError:
            self.db.rollback()
            return False

    def _schedule_followups(
        self,
        activity_id: str,
        session_id: str,
        title: str,
        host_id: str,
        invited_user_ids: Sequence[str],
    ) -> None:
        if self.enrichment is not None:
            self._dispatch_best_effort(
                f"Enrichment of activity {activity_id}", self.enrichment.enrich, activity_id
            )
        if self.notifier is None or not invited_user_ids:
            return
        host = self.users.get_user_by_id(host_id)
        host_name = (host.display_name or host.username) if host else None
        for user_id in invited_user_ids:
            self._dispatch_best_effort(
                f"Invite notification to {user_id}",
                self.notifier.send_invite,
                user_id,
                session_id,
                title,
                host_name,
            )

    def _dispatch_best_effort(self, description: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            self._dispatch(run_best_effort, description, fn, *args)
        except Exception as exc:
            logger.warning("Could not schedule %s: %s", description, exc)

    # ------------------------------------------------------------------
    # Compensation actions
    # ------------------------------------------------------------------

    def _delete_session_row(self, session_id: str) -> None:
        try:
            self.db.query(SessionModel).filter(SessionModel.id == session_id).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _delete_participants(self, session_id: str) -> None:
        try:
            self.db.query(SessionParticipantModel).filter(
                SessionParticipantModel.session_id == session_id
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _delete_invited_users(self, session_id: str) -> None:
        try:
            self.db.query(SessionInvitedUserModel).filter(
                SessionInvitedUserModel.session_id == session_id
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _redeem_invite(self, session_id: str, code: str) -> None:
        """Validate an invite for this session and count one use.

        The increment is a single conditional update, so two redemptions can
        never push uses_count past max_uses. It is left uncommitted for the
        caller to commit with the participant write.
        """
        invite = (
            self.db.query(SessionInviteModel)
            .filter(
                SessionInviteModel.code == code,
                SessionInviteModel.session_id == session_id,
            )
            .first()
        )
        if invite is None:
            raise ConflictError("Invalid invite code")
        if invite.expires_at and parse_iso(invite.expires_at) <= datetime.now(pytz.utc):
            raise ConflictError("This invite has expired")
        if invite.max_uses is not None and invite.uses_count >= invite.max_uses:
            raise ConflictError("This invite has been fully used")

        try:
            updated = (
                self.db.query(SessionInviteModel)
                .filter(
                    SessionInviteModel.code == code,
                    or_(
                        SessionInviteModel.max_uses.is_(None),
                        SessionInviteModel.uses_count < SessionInviteModel.max_uses,
                    ),
                )
                .update(
                    {SessionInviteModel.uses_count: SessionInviteModel.uses_count + 1},
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError(f"Failed to redeem invite: {exc}") from exc
        if updated == 0:
            self.db.rollback()
            raise ConflictError("This invite has been fully used")

    def _get_model(self, session_id: str) -> Optional[SessionModel]:
        return self.db.query(SessionModel).filter(SessionModel.id == session_id).first()

    def _get_activity(self, activity_id: str) -> Optional[ActivityRecordModel]:
        return (
            self.db.query(ActivityRecordModel)
            .filter(ActivityRecordModel.activity_id == activity_id)
            .first()
        )

    def _joined_participants(self, session_id: str) -> List[SessionParticipantModel]:
        return (
            self.db.query(SessionParticipantModel)
            .filter(
                SessionParticipantModel.session_id == session_id,
                SessionParticipantModel.state == "joined",
            )
            .all()
        )

    def _count_joined(self, session_id: str) -> int:
        return (
            self.db.query(func.count())
            .select_from(SessionParticipantModel)
            .filter(
                SessionParticipantModel.session_id == session_id,
                SessionParticipantModel.state == "joined",
            )
            .scalar()
            or 0
        )

    def _joined_counts(self, session_ids: Sequence[str]) -> Dict[str, int]:
        if not session_ids:
            return {}
        rows = (
            self.db.query(SessionParticipantModel.session_id, func.count())
            .filter(
                SessionParticipantModel.session_id.in_(list(session_ids)),
                SessionParticipantModel.state == "joined",
            )
            .group_by(SessionParticipantModel.session_id)
            .all()
        )
        return {session_id: count for session_id, count in rows}

    def _visible_to(self, requester_id: Optional[str]):
        """SQL condition mirroring SessionAccessPolicy.can_view for listings."""
        if not requester_id:
            return SessionModel.visibility == "public"

        participating = (
            select(SessionParticipantModel.session_id)
            .where(
                SessionParticipantModel.user_id == requester_id,
                SessionParticipantModel.state.in_(("joined", "invited")),
            )
        )
        conditions = [
            SessionModel.visibility == "public",
            SessionModel.host_id == requester_id,
            SessionModel.id.in_(participating),
        ]
        friend_ids = self.friendship_oracle.list_friend_ids(requester_id)
        if friend_ids:
            conditions.append(
                (SessionModel.visibility == "friends") & SessionModel.host_id.in_(friend_ids)
            )
        return or_(*conditions)

    def _build_detail(self, model: SessionModel) -> SessionDetail:
        participants = models_to_participants(
            model.participants, with_handoff=self.capabilities.handoff_state
        )
        current = sum(1 for p in participants if p.state == "joined")
        info = model_to_session_info(model, current)
        invite = model.invites[0] if model.invites else None
        return SessionDetail(
            **info.model_dump(),
            participants=participants,
            invite_link=config.build_invite_link(invite.code) if invite else None,
        )

    @staticmethod
    def _clean_external_ids(external_ids: Optional[Sequence[Any]]) -> List[str]:
        if not external_ids:
            return []
        cleaned = (str(value).strip() for value in external_ids if value is not None)
        return list(dict.fromkeys(value for value in cleaned if value))

    @staticmethod
    def _to_iso_or_none(value: Union[datetime, str, None], field: str) -> Optional[str]:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return to_iso(value)
        try:
            return to_iso(parse_iso(value))
        except ValueError as exc:
            raise ValidationError(f"{field} must be an ISO 8601 timestamp") from exc
