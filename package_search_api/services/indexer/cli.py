import sys
import logging
import argparse
from typing import List, Optional

import redis
from dotenv import load_dotenv

from package_search_api.services.indexer.database_manager import PackageRepository, get_db_connection
from package_search_api.services.indexer.index_packages import STATUS_ABORTED, IndexRequest, PackageIndexer
from package_search_api.services.indexer.redis_stats import RedisLocker, RedisPopularitySource
from package_search_api.services.search.config import Settings, get_settings
from package_search_api.services.search.exceptions import PackageNotFound
from package_search_api.services.search.solr_client import SolrClient

logger = logging.getLogger(__name__)

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Index packages into the Solr search core.')
    parser.add_argument('package', nargs='?', default=None,
                        help='Package name to index')
    parser.add_argument('--force', action='store_true',
                        help='Force a re-indexing of all packages, clearing the index first')
    parser.add_argument('--all', dest='index_all', action='store_true',
                        help='Index all packages without clearing the index first')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log progress for every package')
    return parser.parse_args(argv)

def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

def build_indexer(settings: Settings, repository: PackageRepository) -> PackageIndexer:
    redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    solr = SolrClient(settings.SOLR_URL, settings.SOLR_CORE, timeout=settings.SOLR_TIMEOUT)
    return PackageIndexer(
        repository=repository,
        solr=solr,
        popularity_source=RedisPopularitySource(redis_client),
        locker=RedisLocker(redis_client, ttl=settings.LOCK_TTL),
        cache_dir=settings.CACHE_DIR,
        lock_name=settings.LOCK_NAME,
        batch_size=settings.INDEX_BATCH_SIZE,
    )

def main(argv: Optional[List[str]] = None) -> int:
    """Run one indexing pass and return the process exit code."""
    args = parse_args(argv)
    load_dotenv()
    setup_logging(args.verbose)

    settings = get_settings()
    repository = PackageRepository(get_db_connection(settings))
    try:
        indexer = build_indexer(settings, repository)
        report = indexer.run(IndexRequest(
            package=args.package,
            force=args.force,
            index_all=args.index_all,
        ))
    except PackageNotFound as e:
        logger.error(str(e))
        return 1
    finally:
        repository.close()

    if report.status == STATUS_ABORTED:
        logger.info(f"Indexing skipped ({report.reason})")
    return 0

def run():
    """Entry point function."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        sys.exit(1)

if __name__ == "__main__":
    run()
