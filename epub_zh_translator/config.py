#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Configuration handler for the EPUB translator.
Handles loading, saving, and accessing configuration parameters.
"""

import os
import configparser
import logging

logger = logging.getLogger("epub_zh_translator.config")

API_KEY_ENV = "MOONSHOT_API_KEY"


class Config:
    """Configuration handler for the EPUB translator."""

    DEFAULT_CONFIG = {
        'moonshot': {
            'api_key': '',
            'model': 'moonshot-v1-8k',
            'api_endpoint': 'https://api.moonshot.cn/v1/chat/completions',
            'timeout': '60',
            'max_retries': '3',
            'rate_limit': '20',  # requests per minute
            'temperature': '0.3',
            'max_tokens': '4000'
        },
        'translation': {
            'style': 'general',  # fiction, science or general
            'max_chunk_length': '1500',  # characters per API request
            'sentence_tokenizer': 'regex',  # regex or nltk
            'target_language': 'zh-CN'
        },
        'extraction': {
            'exclude_link_text': 'True',
            'navigation_headings_only': 'True',
            'link_weight': '20',
            'navigation_density': '0.5',
            'navigation_min_links': '5',
            'min_chapter_length': '10'
        },
        'processing': {
            'max_parallel_chapters': '3',
            'max_parallel_chunks': '3',
            'async_requests': 'True',  # one aiohttp session per chapter when the translator supports it
            'chapter_limit': '0'  # 0 translates every chapter
        }
    }

    def __init__(self, config_file="config.ini", create=True):
        """Initialize configuration from file or create default.

        Args:
            config_file: Path to the INI file
            create: Write a default file when none exists
        """
        self.config_file = config_file
        self.config = configparser.ConfigParser()

        # Load existing config or create default
        if config_file and os.path.exists(config_file):
            logger.info(f"Loading configuration from {config_file}")
            self.config.read(config_file, encoding='utf-8')
            self._validate_config()
        else:
            self._create_default_config()
            if config_file and create:
                logger.info(f"Creating default configuration in {config_file}")
                self.save()

    def _create_default_config(self):
        """Create default configuration."""
        for section, options in self.DEFAULT_CONFIG.items():
            if not self.config.has_section(section):
                self.config.add_section(section)

            for option, value in options.items():
                self.config.set(section, option, value)

    def _validate_config(self):
        """Ensure all required configuration options are present."""
        for section, options in self.DEFAULT_CONFIG.items():
            if not self.config.has_section(section):
                logger.warning(f"Missing section '{section}' in config, adding defaults")
                self.config.add_section(section)

            for option, default_value in options.items():
                if not self.config.has_option(section, option):
                    logger.warning(f"Missing option '{option}' in section '{section}', adding default")
                    self.config.set(section, option, default_value)

    def get(self, section, option, fallback=None):
        """Get configuration value."""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            if fallback is not None:
                return fallback
            try:
                return self.DEFAULT_CONFIG[section][option]
            except KeyError:
                logger.error(f"Configuration option '{section}.{option}' not found")
                return None

    def getboolean(self, section, option, fallback=None):
        """Get boolean configuration value."""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            try:
                value = self.DEFAULT_CONFIG[section][option]
                return self.config.BOOLEAN_STATES[value.lower()]
            except KeyError:
                logger.error(f"Boolean configuration option '{section}.{option}' not found or invalid")
                return None

    def getint(self, section, option, fallback=None):
        """Get integer configuration value."""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            try:
                return int(self.DEFAULT_CONFIG[section][option])
            except (KeyError, ValueError):
                logger.error(f"Integer configuration option '{section}.{option}' not found or invalid")
                return None

    def getfloat(self, section, option, fallback=None):
        """Get float configuration value."""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            try:
                return float(self.DEFAULT_CONFIG[section][option])
            except (KeyError, ValueError):
                logger.error(f"Float configuration option '{section}.{option}' not found or invalid")
                return None

    def get_api_key(self):
        """API key from the config file, or the MOONSHOT_API_KEY environment variable."""
        return self.get('moonshot', 'api_key') or os.environ.get(API_KEY_ENV, '')

    def set(self, section, option, value):
        """Set configuration value."""
        if not self.config.has_section(section):
            self.config.add_section(section)

        self.config.set(section, option, str(value))

    def save(self):
        """Save configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            self.config.write(f)
        logger.info(f"Configuration saved to {self.config_file}")
