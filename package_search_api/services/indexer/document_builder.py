from typing import Iterable, Optional

from package_search_api.services.indexer.ranking import popularity, trendiness
from package_search_api.services.indexer.tags import normalize_tags, strip_control_chars
from package_search_api.services.search.models.document import SearchDocument
from package_search_api.services.search.models.package import DownloadStats, Package

SPAM_REPLACEMENT = 'spam/spam'
VIRTUAL_PACKAGE_TYPE = 'virtual-package'
# Virtual packages have no usage signal of their own
VIRTUAL_TRENDINESS = 100

def is_spam(package: Package) -> bool:
    return package.abandoned and package.replacement_package == SPAM_REPLACEMENT

def build_document(
    package: Package,
    tags: Iterable[str],
    downloads: DownloadStats,
    favers: int,
    trending_score: Optional[float] = None,
) -> SearchDocument:
    """Build the search document of a registered package."""
    if package.abandoned:
        abandoned, replacement = 1, package.replacement_package or ''
    else:
        abandoned, replacement = 0, ''

    return SearchDocument(
        id=package.id,
        name=package.name,
        package_name=package.package_name,
        description=strip_control_chars(package.description or ''),
        type=package.type,
        repository=package.repository,
        language=package.language,
        tags=tuple(normalize_tags(tags)),
        abandoned=abandoned,
        replacement_package=replacement,
        downloads=downloads.total,
        favers=favers,
        popularity=popularity(downloads.monthly, package.github_stars),
        trendiness=trendiness(trending_score),
    )

def build_virtual_document(provided_name: str) -> SearchDocument:
    """Build the placeholder document of a name only provided by other packages."""
    return SearchDocument(
        id=f'virtual:{provided_name}',
        name=provided_name,
        package_name=provided_name.split('/', 1)[-1],
        description='',
        type=VIRTUAL_PACKAGE_TYPE,
        repository='',
        abandoned=0,
        replacement_package='',
        trendiness=VIRTUAL_TRENDINESS,
    )
