"""User behavior log and the per-user profile aggregate derived from it"""

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from config import BEHAVIORS_KEY, BEHAVIOR_RETENTION_MS, PROFILES_KEY, UNKNOWN_SESSION
from events import EventStore
from models import Action, UserBehavior, UserProfile
from storage import KeyValueStore, load_json, save_json
from utils import now_ms

logger = logging.getLogger(__name__)

_behaviors_adapter = TypeAdapter(List[UserBehavior])
_profiles_adapter = TypeAdapter(Dict[str, UserProfile])


class UserProfileIndex:
    """One incrementally updated profile per user id; profiles are never removed."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.profiles: Dict[str, UserProfile] = load_json(
            store, PROFILES_KEY, _profiles_adapter, {}
        )

    def get(self, user_id: Optional[str]) -> Optional[UserProfile]:
        if not user_id:
            return None
        return self.profiles.get(user_id)

    def update(self, behavior: UserBehavior) -> Optional[UserProfile]:
        if not behavior.user_id:
            return None

        profile = self.profiles.get(behavior.user_id)
        if profile is None:
            profile = UserProfile(user_id=behavior.user_id)
            self.profiles[behavior.user_id] = profile
            logger.debug(f"Created profile for user {behavior.user_id}")

        profile.behavior.last_activity = behavior.timestamp
        if behavior.action == "view":
            profile.behavior.total_views += 1
        elif behavior.action == "purchase":
            profile.behavior.total_purchases += 1

        if behavior.category:
            categories = profile.preferences.categories
            categories[behavior.category] = categories.get(behavior.category, 0) + 1

        return profile

    def save(self) -> None:
        save_json(self.store, PROFILES_KEY, _profiles_adapter, self.profiles)


class BehaviorStore:
    def __init__(
        self,
        store: KeyValueStore,
        events: EventStore,
        profiles: UserProfileIndex,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.events = events
        self.profiles = profiles
        self.clock = clock
        self.behaviors: List[UserBehavior] = load_json(
            store, BEHAVIORS_KEY, _behaviors_adapter, []
        )

    def track_user_behavior(
        self, action: Action, context: Dict[str, Any], user_id: Optional[str] = None
    ) -> UserBehavior:
        """Append a behavior, fold it into the user's profile and persist both."""
        behavior = UserBehavior(
            user_id=user_id,
            session_id=self.events.active_session_id or UNKNOWN_SESSION,
            action=action,
            product_id=context.get("productId"),
            category=context.get("category"),
            timestamp=self.clock(),
            context=context,
        )

        self.behaviors.append(behavior)
        self.profiles.update(behavior)
        self.save()
        return behavior

    def recent(self, window_ms: int) -> List[UserBehavior]:
        now = self.clock()
        return [b for b in self.behaviors if now - b.timestamp < window_ms]

    def save(self) -> None:
        cutoff = self.clock() - BEHAVIOR_RETENTION_MS
        self.behaviors = [b for b in self.behaviors if b.timestamp > cutoff]
        save_json(self.store, BEHAVIORS_KEY, _behaviors_adapter, self.behaviors)
        self.profiles.save()
