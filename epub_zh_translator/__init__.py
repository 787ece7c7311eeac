#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
EPUB translator from English to Chinese using the Moonshot API.
Package for translating EPUB books while preserving their markup, images and
links.
"""

import logging

__version__ = "0.3.0"
__author__ = "Epub Translator Team"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)


# Defer imports until a component is needed
def get_translator(config):
    from .translator import MoonshotTranslator
    return MoonshotTranslator(
        api_key=config.get_api_key(),
        model=config.get("moonshot", "model"),
        endpoint=config.get("moonshot", "api_endpoint"),
        max_retries=config.getint("moonshot", "max_retries"),
        timeout=config.getint("moonshot", "timeout"),
        rate_limit=config.getint("moonshot", "rate_limit"),
        temperature=config.getfloat("moonshot", "temperature"),
        max_tokens=config.getint("moonshot", "max_tokens")
    )


def get_processor(config, translator):
    from .epub_processor import EPUBProcessor
    return EPUBProcessor(translator=translator, config=config)
