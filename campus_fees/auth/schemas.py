from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from campus_fees.fees.domain import ActorRef


class CurrentActor(BaseModel):
    """Authenticated user resolved from the auth service's access token."""

    id: UUID
    name: str
    email: Optional[str] = None
    role: str

    def ref(self) -> ActorRef:
        return ActorRef(id=self.id, name=self.name, email=self.email)
