"""Opaque invitation tokens."""

from __future__ import annotations

import hashlib
import re
import secrets

import structlog
from sqlalchemy.orm import Session

from sitecrew.core.exceptions import TokenNotFound
from sitecrew.db.models import InvitationModel
from sitecrew.db.store import TenancyStore

logger = structlog.get_logger()

TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2
_TOKEN_RE = re.compile(rf"^[0-9a-f]{{{TOKEN_LENGTH}}}$")


class TokenCodec:
    """
    Mint and resolve invitation tokens.

    A token is 256 random bits, hex encoded. It carries no payload: all state
    lives on the invitation row, which stores only the SHA-256 digest of the
    token. Lookup is an exact match on the indexed digest.
    """

    def __init__(self, store: TenancyStore | None = None) -> None:
        self.store = store or TenancyStore()
        self.logger = logger.bind(component="token_codec")

    @staticmethod
    def generate() -> str:
        """Generate a new token."""
        return secrets.token_hex(TOKEN_BYTES)

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 digest stored in place of the token."""
        return hashlib.sha256(token.encode()).hexdigest()

    @staticmethod
    def is_well_formed(token: str | None) -> bool:
        return isinstance(token, str) and bool(_TOKEN_RE.match(token))

    def lookup(self, session: Session, token: str | None) -> InvitationModel:
        """
        Find the invitation row for a token.

        Raises:
            TokenNotFound: If the token is malformed or matches nothing
        """
        if not self.is_well_formed(token):
            raise TokenNotFound()

        token_hash = self.hash_token(token)
        invitation = self.store.find_invitation_by_token_hash(session, token_hash)
        if invitation is None or not secrets.compare_digest(invitation.token_hash, token_hash):
            raise TokenNotFound()
        return invitation

    def validate(self, session: Session, token: str | None) -> str:
        """Resolve a token to its invitation id."""
        return self.lookup(session, token).id
