"""Backend for identifiers that are already authorized.

Nothing is published.  Validation succeeds only when the server
reports the authorization as valid, e.g. because it was completed
out of band or pre-authorized by the CA.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from certwright.challenge.base import ValidationBackend
from certwright.core.state import ENABLED, State
from certwright.core.types import Parallelism

if TYPE_CHECKING:
    from certwright.challenge.base import ValidationContext
    from certwright.models.protocol import ChallengeOffer
    from certwright.models.target import Target


class NullValidation(ValidationBackend):
    key = "none"
    parallelism = Parallelism.ANSWER | Parallelism.PREPARE | Parallelism.REUSE
    answers_challenges = False

    def capability(self, target: Target) -> State:  # noqa: ARG002
        return ENABLED

    def select_challenge(self, offers: list[ChallengeOffer]) -> ChallengeOffer | None:  # noqa: ARG002
        return None

    def prepare_challenge(self, context: ValidationContext) -> None:
        pass

    def cleanup(self, context: ValidationContext) -> None:
        pass
