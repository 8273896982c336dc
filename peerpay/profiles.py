"""
Profile Directory Module

Display identities (name, avatar) for account ids. The ledger never stores
names: it resolves party display records here at read time, and a missing
profile resolves to an explicit placeholder instead of failing the read.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger


UNKNOWN_NAME = "Unknown"
UNKNOWN_AVATAR = ""


@dataclass
class Profile(StorageRecord):
    """User profile keyed by account id"""
    name: str
    email: str
    avatar: str = ""


class PartyResolution(Enum):
    """How a party display record was produced"""
    FOUND = "found"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class PartyRecord:
    """Human-readable projection of an account id"""
    id: str
    name: str
    avatar: str
    resolution: PartyResolution = PartyResolution.FOUND

    @classmethod
    def from_profile(cls, profile: Profile) -> 'PartyRecord':
        return cls(id=profile.id, name=profile.name, avatar=profile.avatar)

    @classmethod
    def placeholder(cls, account_id: str) -> 'PartyRecord':
        return cls(
            id=account_id,
            name=UNKNOWN_NAME,
            avatar=UNKNOWN_AVATAR,
            resolution=PartyResolution.PLACEHOLDER
        )

    @property
    def is_placeholder(self) -> bool:
        return self.resolution == PartyResolution.PLACEHOLDER

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}


class ProfileProvider(ABC):
    """What the ledger needs from the profile collaborator"""

    @abstractmethod
    def get_profile(self, account_id: str) -> Optional[Profile]:
        """Return the profile, or None if there is none"""
        pass

    def resolve_party(self, account_id: str) -> PartyRecord:
        profile = self.get_profile(account_id)
        if profile is None:
            return PartyRecord.placeholder(account_id)
        return PartyRecord.from_profile(profile)


class ProfileDirectory(ProfileProvider):
    """Storage-backed profile directory"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "profiles"
        self.logger = get_logger("peerpay.profiles")

    def register_profile(self, account_id: str, name: str, email: str, avatar: str = "") -> Profile:
        """
        Register (or replace) the display profile for an account

        Args:
            account_id: Account the profile belongs to
            name: Display name
            email: Contact email, used by search
            avatar: Avatar URL, may be empty
        """
        if not name or not name.strip():
            raise ValueError("Profile name is required")
        if not email or "@" not in email:
            raise ValueError("A valid email is required")

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            existing = self.storage.load(self.table_name, account_id)
            created_at = datetime.fromisoformat(existing['created_at']) if existing else now

            profile = Profile(
                id=account_id,
                created_at=created_at,
                updated_at=now,
                name=name.strip(),
                email=email.strip().lower(),
                avatar=avatar or ""
            )
            self.storage.save(self.table_name, account_id, profile.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.PROFILE_REGISTERED,
                entity_type="profile",
                entity_id=account_id,
                metadata={"name": profile.name},
                user_id=account_id
            )

        return profile

    def get_profile(self, account_id: str) -> Optional[Profile]:
        data = self.storage.load(self.table_name, account_id)
        if data:
            return self._profile_from_dict(data)
        return None

    def search_profiles(self, query: str, limit: int = 10) -> List[Profile]:
        """
        Case-insensitive substring search over name and email,
        used to pick a recipient
        """
        needle = (query or "").strip().lower()
        if not needle:
            return []

        matches = []
        for data in self.storage.load_all(self.table_name):
            if needle in data['name'].lower() or needle in data['email'].lower():
                matches.append(self._profile_from_dict(data))

        matches.sort(key=lambda p: (p.name.lower(), p.id))
        return matches[:limit]

    def _profile_from_dict(self, data: Dict) -> Profile:
        return Profile(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            email=data['email'],
            avatar=data.get('avatar', "")
        )
