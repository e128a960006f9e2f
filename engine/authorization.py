"""Autorisierung: Standard-Implementierungen der Authorizer-Schnittstelle."""

from typing import Optional

from config.schema import PermissionPolicy
from engine.identity import resolve_location
from engine.ports import AuthDecision
from models.learner import Learner
from models.session import Session


class AllowAllAuthorizer:
    """Erlaubt jede Aktion (Tests, Einzelplatz-Betrieb)."""

    async def can_assign(self, learner: Learner, session: Session) -> AuthDecision:
        return AuthDecision(allowed=True)

    async def can_remove(self, learner: Optional[Learner],
                         session: Optional[Session]) -> AuthDecision:
        return AuthDecision(allowed=True)


class PolicyAuthorizer:
    """Prüft Bearbeitungsrecht sowie Bereichs- und Standort-Einschränkungen."""

    def __init__(self, policy: Optional[PermissionPolicy]):
        self.policy = policy

    def _check(self, session: Optional[Session], verb: str) -> AuthDecision:
        policy = self.policy
        if policy is None:
            return AuthDecision(allowed=False, reason="Keine Berechtigungen hinterlegt")
        if policy.is_super_admin:
            return AuthDecision(allowed=True)
        if not policy.can_edit:
            return AuthDecision(
                allowed=False,
                reason=f"Keine Berechtigung, Teilnehmende zu {verb}",
            )
        if session is None:
            # Ganzer Zeitplan: nur ohne Einschränkungen erlaubt
            if policy.functional_area_names or policy.training_location_names:
                return AuthDecision(
                    allowed=False,
                    reason="Eingeschränkte Rechte erlauben kein Leeren des ganzen Zeitplans",
                )
            return AuthDecision(allowed=True)

        location, area = resolve_location(session)
        if policy.functional_area_names and area not in policy.functional_area_names:
            return AuthDecision(
                allowed=False,
                reason=(f"Sie können Teilnehmende nur in Sessions dieser Bereiche {verb}: "
                        f"{', '.join(policy.functional_area_names)}"),
            )
        if policy.training_location_names and location not in policy.training_location_names:
            return AuthDecision(
                allowed=False,
                reason=(f"Sie können Teilnehmende nur an diesen Standorten {verb}: "
                        f"{', '.join(policy.training_location_names)}"),
            )
        return AuthDecision(allowed=True)

    async def can_assign(self, learner: Learner, session: Session) -> AuthDecision:
        return self._check(session, "zuweisen")

    async def can_remove(self, learner: Optional[Learner],
                         session: Optional[Session]) -> AuthDecision:
        return self._check(session, "entfernen")
