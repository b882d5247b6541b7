from pydantic import BaseModel


class Actor(BaseModel):
    """Who performed a change, as supplied by the auth/session layer. Opaque to the ledger."""
    id: str = "unknown"
    email: str = "unknown"


SYSTEM_ACTOR = Actor(id="system", email="system")
