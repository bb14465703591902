from typing import Any, Dict, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field

class SearchDocument(BaseModel):
    """One Solr document, rebuilt from scratch on every indexing pass."""
    model_config = ConfigDict(frozen=True)

    id: Union[int, str] = Field(..., description="Numeric package id, or virtual:<name> for provided names")
    name: str
    package_name: str
    description: str = ""
    type: Optional[str] = None
    repository: Optional[str] = None
    language: Optional[str] = None
    tags: Tuple[str, ...] = ()
    abandoned: int = 0
    replacement_package: str = ""
    downloads: Optional[int] = None
    favers: Optional[int] = None
    popularity: Optional[int] = None
    trendiness: float = 0

    @property
    def is_virtual(self) -> bool:
        return not str(self.id).isdigit()

    def to_solr(self) -> Dict[str, Any]:
        """Field mapping sent to Solr; unset optional fields are left out."""
        fields = {
            'id': self.id,
            'name': self.name,
            'package_name': self.package_name,
            'description': self.description,
            'type': self.type,
            'repository': self.repository,
            'language': self.language,
            'tags': list(self.tags),
            'abandoned': self.abandoned,
            'replacementPackage': self.replacement_package,
            'downloads': self.downloads,
            'favers': self.favers,
            'popularity': self.popularity,
            'trendiness': self.trendiness,
        }
        return {key: value for key, value in fields.items() if value is not None}
