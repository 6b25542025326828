#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# ZIFU - Rewrite file names in ZIP archives to UTF-8
# Copyright (C) 2025-2026 ZIFU contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import json
import os

from zifu.Kernel import Singleton, StorageLocator, getLogger
from zifu.Utils import getEnv

CONFIG_FILENAME = 'zifu.json'

# IBM PC code page used when the host locale maps to nothing better
DEFAULT_FALLBACK_CODE_PAGE = 437

logger = getLogger(__name__)


# Singleton
class SettingsGetter(Singleton):
    """
    Runtime configuration for archive repair.

    Values come from, in increasing priority:
        1. Built-in defaults
        2. zifu.json located by StorageLocator, e.g.
           {"encoding": "sjis", "preferUtf8": false, "fallbackCodePage": 437}
        3. Environment variables ZIFU_ENCODING, ZIFU_PREFER_UTF8, ZIFU_FALLBACK_CODE_PAGE
        4. Keyword arguments given on first initialization
    """

    def initialize(self, encoding=None, preferUtf8=None, fallbackCodePage=None):
        """Initialize the SettingsGetter, explicit arguments override file and environment."""
        self._overrides = {
            'encoding': encoding,
            'preferUtf8': preferUtf8,
            'fallbackCodePage': fallbackCodePage,
        }
        self.reload()

    def reload(self, **overrides):
        """
        Re-read zifu.json and the environment.

        Args:
            **overrides: encoding, preferUtf8 or fallbackCodePage values replacing the ones
                         given on initialization
        """
        for key, value in overrides.items():
            if key not in self._overrides:
                raise TypeError(f"Unknown setting '{key}'")
            self._overrides[key] = value

        config = self._loadConfig()

        encoding = config.get('encoding')
        preferUtf8 = bool(config.get('preferUtf8', False))
        fallbackCodePage = config.get('fallbackCodePage', DEFAULT_FALLBACK_CODE_PAGE)
        if not isinstance(fallbackCodePage, int):
            logger.warning(f"{CONFIG_FILENAME} 'fallbackCodePage' should be an integer, got: {fallbackCodePage!r}")
            fallbackCodePage = DEFAULT_FALLBACK_CODE_PAGE

        encoding = getEnv('ZIFU_ENCODING', encoding)
        preferUtf8 = getEnv('ZIFU_PREFER_UTF8', preferUtf8)
        fallbackCodePage = getEnv('ZIFU_FALLBACK_CODE_PAGE', fallbackCodePage)

        self._encoding = self._pick('encoding', encoding) or None
        self._preferUtf8 = self._pick('preferUtf8', preferUtf8)
        self._fallbackCodePage = self._pick('fallbackCodePage', fallbackCodePage)

        logger.debug(
            f"Settings loaded: encoding={self._encoding}, preferUtf8={self._preferUtf8}, "
            f"fallbackCodePage={self._fallbackCodePage}"
        )

    def _pick(self, key, value):
        override = self._overrides[key]
        return value if override is None else override

    def _loadConfig(self):
        """Load zifu.json, an absent or unreadable file yields an empty configuration"""
        configPath = StorageLocator.getInstance().findConfig(CONFIG_FILENAME)
        if not os.path.exists(configPath):
            return {}

        try:
            with open(configPath, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {configPath}: {e}")
            return {}

        if not isinstance(config, dict):
            logger.warning(f"{configPath} should contain a JSON object, got: {type(config)}")
            return {}

        logger.debug(f"Loaded config from {configPath}")
        return config

    @property
    def encoding(self):
        """Legacy encoding label to assume for non-UTF-8 names, None means detect from the host locale."""
        return self._encoding

    @property
    def preferUtf8(self) -> bool:
        return self._preferUtf8

    @property
    def fallbackCodePage(self) -> int:
        return self._fallbackCodePage
