#!/usr/bin/env python3
"""CLI interface for the visual-match programs."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import config
from .corpus import iter_image_paths
from .descriptors import WarmSceneDescriptor
from .embeddings import OnnxEmbedder, write_embeddings_csv
from .errors import VisualMatchError
from .index import FAISS_FILE, DescriptorIndex, build_index
from .programs import PROGRAMS, Program, get_program
from .ranking import Ranking

logger = logging.getLogger(__name__)

# Errors that end a run with exit code 1
INPUT_ERRORS = (VisualMatchError, OSError, ValueError)

# Positional arguments per program, besides target and k
_CORPUS_HELP = {
    "dir": ("image_dir", "Directory of images to rank (or a descriptor "
                         "index built with build-index)"),
    "csv": ("csv_file", "CSV file of precomputed embeddings to rank"),
}
_FEATURE_HELP = {
    "csv": ("csv_file", "CSV file of precomputed embeddings"),
    "onnx": ("onnx_model", "ONNX model used to compute embeddings"),
}


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workers", type=int, default=config.RANK_WORKERS,
                        help="Worker threads for extraction and ranking")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")


def add_program_arguments(parser: argparse.ArgumentParser,
                          program: Program) -> None:
    """Positional layout: <target> <corpus-source> [<feature-source>] <k>."""
    if program.corpus_from_source:
        parser.add_argument("target", type=str,
                            help="Target image file name as listed in the CSV")
        name, text = _CORPUS_HELP["csv"]
        parser.add_argument("corpus", metavar=name, type=str, help=text)
    else:
        parser.add_argument("target", type=str, help="Path to the target image")
        name, text = _CORPUS_HELP["dir"]
        parser.add_argument("corpus", metavar=name, type=str, help=text)
        if program.feature_source:
            name, text = _FEATURE_HELP[program.feature_source]
            parser.add_argument("feature", metavar=name, type=str, help=text)

    parser.add_argument("k", type=int, help="Number of matches to show")
    parser.add_argument("--bottom", type=int, default=program.default_bottom,
                        help="Also show this many least similar images")
    _add_common_options(parser)


def is_index_dir(path: str) -> bool:
    return os.path.isfile(os.path.join(path, FAISS_FILE))


def format_result(position: int, result, descriptor=None) -> str:
    """One result line; warm scene matches also show their statistics."""
    line = f"{position}. {result.identifier} (distance: {result.distance:.4f}"
    if isinstance(descriptor, WarmSceneDescriptor):
        line += (f", warm: {descriptor.warm_fraction:.3f}, "
                 f"grad: {descriptor.vertical_gradient:.1f}, "
                 f"edge: {descriptor.edge_density:.3f}")
    return line + ")"


def print_target_features(descriptor) -> None:
    if not isinstance(descriptor, WarmSceneDescriptor):
        return
    print("\n=== Target features ===")
    print(f"Warm color score: {descriptor.warm_fraction:.4f}")
    print(f"Vertical gradient: {descriptor.vertical_gradient:.2f}")
    print(f"Edge density: {descriptor.edge_density:.4f}")


def print_ranking(ranking: Ranking, k: int, bottom: int = 0) -> None:
    """Print top-k and (optionally) bottom matches to stdout."""
    print_target_features(ranking.query)

    print(f"\n=== Top {k} matches ===")
    for i, result in enumerate(ranking.top, start=1):
        print(format_result(i, result, ranking.descriptors.get(result.identifier)))

    if bottom > 0:
        tail = Ranking(results=ranking.results, k=bottom).bottom
        first_position = len(ranking.results) - len(tail) + 1
        print(f"\n=== Least similar images (bottom {bottom}) ===")
        for i, result in enumerate(tail, start=first_position):
            print(format_result(i, result,
                                ranking.descriptors.get(result.identifier)))

    if ranking.skipped:
        print(f"\nSkipped {len(ranking.skipped)} entries")


def run_program(program: Program, args: argparse.Namespace) -> int:
    """
    Run one matching program from parsed arguments.

    Returns:
        Process exit code: 0 on success, 1 on an input error.
    """
    try:
        if program.corpus_from_source:
            source = program.load_feature_source(args.corpus)
            pipeline = program.build(source, workers=args.workers)
            ranking = pipeline.run_source(args.target, source, args.k)
        else:
            feature = None
            if program.feature_source:
                feature = program.load_feature_source(args.feature)
            pipeline = program.build(feature, workers=args.workers)

            if is_index_dir(args.corpus):
                index = DescriptorIndex.load(args.corpus)
                index.check_extractor(pipeline.extractor)
                query = pipeline.describe_target(args.target)
                ranking = index.search(query, args.k, pipeline.metric)
            else:
                ranking = pipeline.run(args.target, args.corpus, args.k)

    except INPUT_ERRORS as e:
        logger.error(f"{program.name} failed: {e}")
        return 1

    print(f"Target: {args.target}")
    print(f"Ranked {len(ranking.results)} images with {pipeline.extractor!r} "
          f"and {pipeline.metric!r}")
    print_ranking(ranking, args.k, args.bottom)
    return 0


def run_build_index(args: argparse.Namespace) -> int:
    program = get_program(args.program)
    if program.corpus_from_source:
        logger.error(f"{program.name} reads its corpus from a CSV; "
                     f"nothing to index")
        return 1
    try:
        feature = None
        if program.feature_source:
            feature = program.load_feature_source(args.feature)
        pipeline = program.build(feature, workers=args.workers)
        stats = build_index(args.image_dir, args.output_dir,
                            pipeline.extractor, workers=args.workers)
    except INPUT_ERRORS as e:
        logger.error(f"Index build failed: {e}")
        return 1

    if not stats["success"]:
        logger.error(stats["error"])
        return 1
    print(f"Indexed {stats['vectors']} images ({stats['dimensions']}d) "
          f"into {args.output_dir}, {stats['errors']} errors")
    return 0


def run_export_embeddings(args: argparse.Namespace) -> int:
    """Compute embeddings for a directory and write them as CSV."""
    try:
        pipeline = get_program("live-dnn").build(
            OnnxEmbedder(args.onnx_model), workers=args.workers
        )
        entries, _ = pipeline.describe_corpus(iter_image_paths(args.image_dir))
        written = write_embeddings_csv(args.output_csv, entries)
    except INPUT_ERRORS as e:
        logger.error(f"Embedding export failed: {e}")
        return 1

    print(f"Wrote {written} embeddings to {args.output_csv}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visual-match",
        description="Rank images by visual similarity to a target image",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for program in PROGRAMS.values():
        sub = subparsers.add_parser(
            program.name, help=program.description,
            description=program.description,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        add_program_arguments(sub, program)

    sub = subparsers.add_parser(
        "build-index", help="Precompute flat descriptors for a directory",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    sub.add_argument("image_dir", type=str, help="Directory of images")
    sub.add_argument("output_dir", type=str, help="Index output directory")
    sub.add_argument("--program", default="baseline",
                     choices=[p.name for p in PROGRAMS.values()
                              if not p.corpus_from_source],
                     help="Program whose extractor builds the descriptors")
    sub.add_argument("--feature", type=str, default=None,
                     help="Feature source for programs that need one")
    _add_common_options(sub)

    sub = subparsers.add_parser(
        "export-embeddings",
        help="Compute ONNX embeddings for a directory and write a CSV",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    sub.add_argument("image_dir", type=str, help="Directory of images")
    sub.add_argument("onnx_model", type=str, help="ONNX model path")
    sub.add_argument("output_csv", type=str, help="CSV file to write")
    _add_common_options(sub)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Umbrella entry point: visual-match <program> ..."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "build-index":
        return run_build_index(args)
    if args.command == "export-embeddings":
        return run_export_embeddings(args)
    return run_program(get_program(args.command), args)


def program_main(name: str, argv: Optional[List[str]] = None) -> int:
    """Entry point for one program as a standalone command."""
    program = get_program(name)
    parser = argparse.ArgumentParser(
        prog=f"{name}-match",
        description=program.description,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_program_arguments(parser, program)
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return run_program(program, args)


def baseline_main(argv=None):
    return program_main("baseline", argv)


def histogram_main(argv=None):
    return program_main("histogram", argv)


def multi_histogram_main(argv=None):
    return program_main("multi-histogram", argv)


def texture_color_main(argv=None):
    return program_main("texture-color", argv)


def deep_embedding_main(argv=None):
    return program_main("deep-embedding", argv)


def live_dnn_main(argv=None):
    return program_main("live-dnn", argv)


def warm_scene_main(argv=None):
    return program_main("warm-scene", argv)


if __name__ == "__main__":
    sys.exit(main())
