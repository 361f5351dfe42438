# cli.py

import argparse
import json
import logging
import sys
from components.duplicate_finder import ImageDuplicateFinder
from components.embedding_client import EmbeddingError, OllamaEmbeddingClient
from config import SystemConfig
from core.errors import VectorIndexError
from utils.file_utils import format_file_size
from utils.logging_config import setup_logging
from utils.report_generator import DuplicateReportGenerator

logger = logging.getLogger(__name__)


def build_finder(config: SystemConfig) -> ImageDuplicateFinder:
    embedder = OllamaEmbeddingClient.from_config(config.embedding)
    return ImageDuplicateFinder(config, embedder)

def index_command(args, finder: ImageDuplicateFinder):
    """Index images from directory"""
    print(f"Indexing images from: {args.directory}")
    count = finder.index_directory(args.directory, skip_existing=not args.reindex)
    print(f"Indexing complete! {count} images added.")

def similarity_search_command(args, finder: ImageDuplicateFinder):
    """Execute similarity search from command line"""
    print(f"Searching for images similar to: {args.query}")

    results = finder.find_similar_images(args.query, args.top_k, args.threshold)

    # Output results
    print(f"\nTop {len(results)} similar images:")
    for i, result in enumerate(results, 1):
        print(f"{i}. {result.path} (similarity: {result.similarity:.4f})")

    # Save results to JSON if requested
    if args.output:
        with open(args.output, 'w') as f:
            json.dump([r.to_dict() for r in results], f, indent=2)
        print(f"\nResults saved to: {args.output}")

def duplicate_command(args, finder: ImageDuplicateFinder):
    """Detect duplicate images"""
    if args.directory:
        print(f"Scanning for duplicates in: {args.directory}")

    groups = finder.find_all_duplicates(args.directory, args.threshold)

    # Report results
    total_dups = sum(len(group.members) for group in groups)
    print(f"\nFound {len(groups)} duplicate groups with {total_dups} total duplicates")

    if args.report:
        DuplicateReportGenerator().generate_report(groups, args.report)
        print(f"Report saved to: {args.report}")
    else:
        # Print to console
        for i, group in enumerate(groups, 1):
            print(f"\nGroup {i}:")
            print(f"  Representative: {group.representative}")
            print(f"  Duplicates ({len(group.members)}):")
            for dup in group.members:
                print(f"    - {dup} ({group.scores.get(dup, 0.0):.4f})")

def remove_command(args, finder: ImageDuplicateFinder):
    """Remove an image from the index"""
    if finder.remove_image(args.path):
        print(f"Removed: {args.path}")
    else:
        print(f"Not indexed: {args.path}")

def reset_command(args, finder: ImageDuplicateFinder):
    """Delete the index"""
    finder.reset()
    print("Vector database reset")

def stats_command(args, finder: ImageDuplicateFinder):
    """Show index statistics"""
    finder.initialize()
    stats = finder.stats()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
        return

    print(f"Storage path:   {stats.storage_path}")
    print(f"Backend:        {stats.backend}")
    print(f"Total vectors:  {stats.total_vectors}")
    print(f"Dimension:      {stats.dimension}")
    print(f"Index file:     {format_file_size(stats.index_artifact_size_bytes)}")
    print(f"Metadata file:  {format_file_size(stats.metadata_artifact_size_bytes)}")
    print(f"Last modified:  {stats.last_modified or 'never'}")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Image Similarity Index - Command Line Interface"
    )
    parser.add_argument('-c', '--config', default='config.yaml',
                        help='Path to YAML configuration file')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Index command
    index_parser = subparsers.add_parser('index', help='Index images from directory')
    index_parser.add_argument('directory', help='Directory containing images')
    index_parser.add_argument('--reindex', action='store_true',
                              help='Re-embed images that are already indexed')
    index_parser.set_defaults(func=index_command)

    # Similarity search command
    search_parser = subparsers.add_parser('search', help='Search for similar images')
    search_parser.add_argument('query', help='Path to query image')
    search_parser.add_argument('-k', '--top-k', type=int, default=None,
                              help='Number of results to return')
    search_parser.add_argument('-t', '--threshold', type=float, default=None,
                              help='Minimum similarity (0-1)')
    search_parser.add_argument('-o', '--output', help='Output JSON file for results')
    search_parser.set_defaults(func=similarity_search_command)

    # Duplicate detection command
    duplicate_parser = subparsers.add_parser('duplicates',
                                            help='Detect duplicate images')
    duplicate_parser.add_argument('directory', nargs='?', default=None,
                                  help='Directory to index before grouping')
    duplicate_parser.add_argument('-t', '--threshold', type=float, default=None,
                                 help='Minimum similarity (0-1)')
    duplicate_parser.add_argument('-r', '--report', help='Output HTML report path')
    duplicate_parser.set_defaults(func=duplicate_command)

    remove_parser = subparsers.add_parser('remove', help='Remove an image from the index')
    remove_parser.add_argument('path', help='Indexed image path')
    remove_parser.set_defaults(func=remove_command)

    reset_parser = subparsers.add_parser('reset', help='Delete the vector database')
    reset_parser.set_defaults(func=reset_command)

    stats_parser = subparsers.add_parser('stats', help='Show index statistics')
    stats_parser.add_argument('--json', action='store_true', help='Print as JSON')
    stats_parser.set_defaults(func=stats_command)

    return parser

def main_cli(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = SystemConfig.load(args.config)
    setup_logging(config.log_level, config.log_dir)

    # Execute command
    try:
        args.func(args, build_finder(config))
    except (VectorIndexError, EmbeddingError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main_cli())
