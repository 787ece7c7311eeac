#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
EPUB English to Chinese translator using the Moonshot API.
Translates the text of every chapter while keeping its markup, images and
links, and leaves every other file in the book untouched.
"""

import argparse
import logging
import os
import sys

from epub_zh_translator import get_processor, get_translator
from epub_zh_translator.config import Config


def setup_logging(log_level):
    """Set up logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    # force: the package import already installed a default handler
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler("epub_zh_translator.log", encoding="utf-8"),
            logging.StreamHandler()
        ],
        force=True
    )
    return logging.getLogger("epub_zh_translator")


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Translate English EPUB files into Chinese using the Moonshot API")

    parser.add_argument(
        "input_file",
        help="Path to the input EPUB file"
    )

    parser.add_argument(
        "-o", "--output",
        help="Path to the output EPUB file (default: translated_[input_filename])",
        default=None
    )

    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default="config.ini"
    )

    parser.add_argument(
        "-k", "--api-key",
        help="Moonshot API key (overrides config file and MOONSHOT_API_KEY)",
        default=None
    )

    parser.add_argument(
        "--style",
        help="Translation style (default: from config, general)",
        choices=["fiction", "science", "general"],
        default=None
    )

    parser.add_argument(
        "--chunk-size",
        help="Maximum characters per translation request (default: from config, 1500)",
        type=int,
        default=None
    )

    parser.add_argument(
        "--max-workers",
        help="Chapters translated in parallel (default: from config, 3)",
        type=int,
        default=None
    )

    parser.add_argument(
        "--chapter-limit",
        help="Translate only the first N chapters, for trying out settings (default: all)",
        type=int,
        default=None
    )

    parser.add_argument(
        "--log-level",
        help="Logging level (default: info)",
        choices=["debug", "info", "warning", "error", "critical"],
        default="info"
    )

    return parser.parse_args(argv)


def default_output_path(input_file):
    input_basename = os.path.basename(input_file)
    input_dirname = os.path.dirname(input_file)
    return os.path.join(input_dirname, f"translated_{input_basename}")


def apply_overrides(config, args):
    """Copy command line overrides into the configuration."""
    if args.api_key:
        config.set('moonshot', 'api_key', args.api_key)
    if args.style:
        config.set('translation', 'style', args.style)
    if args.chunk_size:
        config.set('translation', 'max_chunk_length', args.chunk_size)
    if args.max_workers:
        config.set('processing', 'max_parallel_chapters', args.max_workers)
    if args.chapter_limit is not None:
        config.set('processing', 'chapter_limit', args.chapter_limit)
    return config


def main(argv=None):
    """Main function"""
    args = parse_arguments(argv)
    logger = setup_logging(args.log_level)

    # Validate input file
    if not os.path.exists(args.input_file):
        logger.error(f"Input file does not exist: {args.input_file}")
        sys.exit(1)

    if args.output is None:
        args.output = default_output_path(args.input_file)

    try:
        config = apply_overrides(Config(args.config), args)
        if not config.get_api_key():
            logger.error("No Moonshot API key: set it in the config file, MOONSHOT_API_KEY or --api-key")
            sys.exit(1)

        translator = get_translator(config)
        processor = get_processor(config, translator)

        logger.info(f"Starting translation of {args.input_file}")
        stats = processor.translate_epub(args.input_file, args.output)

        logger.info(
            f"Chapters: {stats['chapters_translated']} translated, "
            f"{stats['chapters_passthrough']} unchanged, {stats['chapters_failed']} failed "
            f"({stats['chapters_total']} total)"
        )
        if stats['chunks_failed']:
            logger.warning(f"{stats['chunks_failed']} chunks kept their English text")
        logger.info(f"Translation completed in {stats['processing_time']:.2f} seconds")
        logger.info(f"Output saved to {args.output}")

    except Exception as e:
        logger.error(f"Error during translation: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
