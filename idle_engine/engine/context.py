"""
Execution context handed to step handlers.
"""

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from ..audit.events import EventBuffer
from ..errors import AuthSessionUnavailable, PermanentProviderError, ValidationError, is_transient
from ..models import EventType, Plan
from ..providers.auth import AuthSessionBroker
from ..security.validator import assert_no_callables

logger = logging.getLogger(__name__)

AUTH_SESSION_BROKER = "AuthSessionBroker"


class StepContext:
    """
    What a handler may see and do while a plan runs.

    Exposes plan and request data, provider lookup, Custom event emission and
    auth-session acquisition through Providers.AuthSessionBroker.
    """

    def __init__(self, plan: Plan, providers: Mapping[str, Any], events: EventBuffer):
        self.plan = plan
        self.providers = providers
        self.correlation_id = plan.correlation_id
        self.actor = plan.request.actor
        self.request = plan.request.to_context()
        self.auth_sessions: Dict[str, Any] = {}
        self.current_step: Optional[str] = None
        self._events = events

    def get_provider(self, alias: str) -> Any:
        """
        Look up a provider by alias.

        Raises:
            PermanentProviderError: If the alias is not in the provider map
        """
        provider = self.providers.get(alias)
        if provider is None:
            raise PermanentProviderError(f"Provider '{alias}' is not present in Providers")
        return provider

    def emit_event(self, message: str, data: Any = None, step_name: Optional[str] = None) -> None:
        """Emit a Custom event (redacted like every other event)."""
        if data is not None and not isinstance(data, Mapping):
            data = {"Value": data}
        self._events.emit_new(
            EventType.CUSTOM, message, step_name or self.current_step, dict(data or {})
        )

    def acquire_auth_session(self, name: str, options: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Acquire a named auth session from the broker.

        Options are normalized (None becomes an empty map), enriched with
        CorrelationId and Actor, and validated for executable values before
        the broker sees them.

        Raises:
            AuthSessionUnavailable: No broker, or the broker could not supply a session
            SecurityViolation: Options carry executable values
        """
        broker = self.providers.get(AUTH_SESSION_BROKER)
        if broker is None:
            raise AuthSessionUnavailable(
                f"Acquiring auth session '{name}' requires Providers.{AUTH_SESSION_BROKER}, "
                "but none was supplied."
            )
        if not isinstance(broker, AuthSessionBroker):
            raise AuthSessionUnavailable(
                f"Providers.{AUTH_SESSION_BROKER} must be an AuthSessionBroker instance, "
                f"got {type(broker).__name__}."
            )

        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ValidationError(
                f"Options for auth session '{name}' must be a mapping", path="AuthSessionOptions"
            )

        enriched = dict(options)
        enriched["CorrelationId"] = self.correlation_id
        enriched["Actor"] = self.actor
        assert_no_callables(enriched, "AuthSessionOptions")
        enriched = copy.deepcopy(enriched)

        try:
            session = broker.acquire_auth_session(name, enriched)
        except AuthSessionUnavailable:
            raise
        except Exception as e:
            if is_transient(e):
                raise
            raise AuthSessionUnavailable(f"Auth session '{name}' could not be acquired: {e}") from e

        self.auth_sessions[name] = session
        logger.debug(f"Auth session '{name}' acquired for {self.correlation_id}")
        return session

    def get_auth_session(self, name: str) -> Any:
        """Return a session acquired earlier in this run."""
        if name not in self.auth_sessions:
            raise AuthSessionUnavailable(f"Auth session '{name}' has not been acquired in this run.")
        return self.auth_sessions[name]
