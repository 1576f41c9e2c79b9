"""
Auth session brokers.

A broker is the only object allowed to carry host-supplied executable state
across the security boundary. The exemption is granted by type: brokers must
subclass AuthSessionBroker.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import AuthSessionUnavailable
from ..security.validator import TrustedCallableCarrier

logger = logging.getLogger(__name__)


class AuthSessionBroker(TrustedCallableCarrier, ABC):
    """
    Resolves named auth sessions on demand.

    Implementations must never prompt interactively. Options always carry
    ``CorrelationId`` and ``Actor`` from the running plan.
    """

    @abstractmethod
    def acquire_auth_session(self, name: str, options: Dict[str, Any]) -> Any:
        """
        Acquire a session.

        Args:
            name: Logical session name (e.g. ``Directory``)
            options: Routing options, enriched with plan context

        Returns:
            An opaque session object handed to step handlers

        Raises:
            AuthSessionUnavailable: If no session matches and no default exists
        """
        pass


class SessionMapBroker(AuthSessionBroker):
    """
    Broker selecting sessions from a list of (match, session) entries.

    An entry matches when its ``Name`` (if given) equals the requested name
    and every other key equals the option of the same name. The first match
    wins; otherwise the default session is returned.
    """

    def __init__(self, session_map: Optional[List[Tuple[Dict[str, Any], Any]]] = None,
                 default_session: Any = None,
                 factory: Optional[Callable[[Any, Dict[str, Any]], Any]] = None):
        """
        Initialize the broker.

        Args:
            session_map: Ordered (match, session) entries
            default_session: Session returned when nothing matches
            factory: Optional callable turning a selected entry into a live session,
                     called as ``factory(session, options)``
        """
        self.session_map = list(session_map or [])
        self.default_session = default_session
        self.factory = factory

    def acquire_auth_session(self, name: str, options: Dict[str, Any]) -> Any:
        for match, session in self.session_map:
            if self._matches(match, name, options):
                logger.debug(f"Auth session '{name}' matched {sorted(match)}")
                return self._materialize(session, options)

        if self.default_session is not None:
            logger.debug(f"Auth session '{name}' resolved to default session")
            return self._materialize(self.default_session, options)

        raise AuthSessionUnavailable(
            f"No auth session matches '{name}' and no default session is configured."
        )

    @staticmethod
    def _matches(match: Dict[str, Any], name: str, options: Dict[str, Any]) -> bool:
        for key, expected in match.items():
            actual = name if key == "Name" else options.get(key)
            if actual != expected:
                return False
        return True

    def _materialize(self, session: Any, options: Dict[str, Any]) -> Any:
        if self.factory is None:
            return session
        return self.factory(session, options)
