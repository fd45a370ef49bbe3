"""Credential pair issued by a successful portal login."""
from dataclasses import dataclass


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str


@dataclass(frozen=True)
class CredentialPair:
    """The two session cookies every authenticated portal call needs.

    A pair is only valid when both cookies carry a value; a refresh
    replaces the whole pair rather than mutating it.
    """

    auth: Cookie
    session: Cookie

    def __post_init__(self) -> None:
        if not self.auth.value or not self.session.value:
            raise ValueError("Credential pair requires both cookies")

    def cookie_header(self) -> str:
        return f"{self.auth.name}={self.auth.value}; {self.session.name}={self.session.value}"

    @property
    def form_token(self) -> str:
        """Anti-forgery token echoed in every form body."""
        return self.auth.value

    @classmethod
    def from_cookies(cls, cookies: list[dict], auth_name: str, session_name: str) -> "CredentialPair":
        """Pick the two named cookies out of a browser cookie dump.

        Raises ``KeyError`` naming the first cookie that is absent.
        """
        by_name = {c.get("name"): c.get("value", "") for c in cookies}
        for name in (auth_name, session_name):
            if not by_name.get(name):
                raise KeyError(name)
        return cls(
            auth=Cookie(auth_name, by_name[auth_name]),
            session=Cookie(session_name, by_name[session_name]),
        )
