from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

class Package(BaseModel):
    """A registered package as stored in the relational store."""
    id: int
    name: str
    description: Optional[str] = None
    type: Optional[str] = None
    repository: Optional[str] = None
    language: Optional[str] = None
    abandoned: bool = False
    replacement_package: Optional[str] = None
    github_stars: int = Field(default=0, ge=0)
    indexed_at: Optional[datetime] = None
    crawled_at: Optional[datetime] = None

    @property
    def vendor(self) -> str:
        return self.name.split('/', 1)[0]

    @property
    def package_name(self) -> str:
        return self.name.split('/', 1)[-1]

class DownloadStats(BaseModel):
    total: int = 0
    monthly: int = 0
