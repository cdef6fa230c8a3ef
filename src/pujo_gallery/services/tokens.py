"""Capability tokens embedded in moderation links.

A token is a signed JWT naming one submission. Possession of a valid,
unexpired token is the only authorization check. The same token is placed in
both the approve and the reject link; the endpoint the bearer opens decides
the action, and whichever link is used first settles the submission.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from pujo_gallery.core.errors import ExpiredToken, InvalidToken
from pujo_gallery.core.settings import Settings, settings

SUBMISSION_CLAIM = "submissionId"


class CapabilityTokenService:
    """Issues and verifies stateless capability tokens."""

    def __init__(self, config: Settings | None = None) -> None:
        config = config or settings
        self._secret = config.jwt_secret
        self._algorithm = config.jwt_algorithm
        self.ttl = timedelta(days=config.token_ttl_days)

    def issue(self, submission_id: str, *, now: datetime | None = None) -> str:
        """Sign a token for `submission_id` valid for the configured window.

        Args:
            submission_id: Submission the bearer may moderate
            now: Issue time override, used to mint back-dated tokens in tests

        Returns:
            Compact JWT string
        """
        issued_at = now or datetime.now(UTC)
        payload = {
            SUBMISSION_CLAIM: submission_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> str:
        """Return the submission id carried by a valid token.

        Raises:
            ExpiredToken: If the token is past its expiry
            InvalidToken: If the token is malformed, forged or lacks the claim
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as err:
            raise ExpiredToken() from err
        except JWTError as err:
            raise InvalidToken() from err

        submission_id = payload.get(SUBMISSION_CLAIM)
        if not isinstance(submission_id, str) or not submission_id:
            raise InvalidToken()
        return submission_id
