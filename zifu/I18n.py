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

import gettext
import json
import locale
import os

from babel import Locale, UnknownLocaleError, default_locale

from zifu.Kernel import PUBLIC_VERSION, Singleton, StorageLocator, getLogger

logger = getLogger(__name__, version=PUBLIC_VERSION)


class I18nManager(Singleton):
    """
    Host locale detection and gettext translations of user facing messages.

    Configuration:
        - Config file: ~/.zifu/i18n.json, e.g. {"language": "en"}
        - Auto-detects OS language if no preference saved
        - Falls back to English for missing translations
    """

    CONFIG_FILENAME = 'i18n.json'

    DOMAIN_CORE = 'messages'

    DEFAULT_LANGUAGE = 'en'

    # Languages with a catalogue under locales/, everything else falls back to English
    SUPPORTED_LANGUAGES = ['en']

    def initialize(self):
        """Initialize I18nManager singleton"""
        self.storageLocator = StorageLocator.getInstance()
        self.configPath = self.storageLocator.findConfig(self.CONFIG_FILENAME)
        self.localeDir = self.storageLocator.findStorage('locales', StorageLocator.Location.SOURCE_BASE)

        self.currentLanguage = None
        self.translationCache = {} # {domain: {language: translation}}

        self._loadOrDetectLanguage()

        logger.debug(f"I18n initialized with language: {self.currentLanguage}, locale dir: {self.localeDir}")

    @staticmethod
    def parseLocale(localeName):
        """
        Parse a POSIX or BCP 47 style locale name with babel.

        'ja_JP.UTF-8', 'zh-TW', 'en_US@euro' are all accepted, 'C' and 'POSIX' are not locales.

        Returns:
            babel.Locale or None
        """
        if not localeName:
            return None

        name = localeName.split('.')[0].split('@')[0].strip().replace('-', '_')
        if not name or name.upper() in ('C', 'POSIX'):
            return None

        try:
            return Locale.parse(name, sep='_')
        except (UnknownLocaleError, ValueError, TypeError) as e:
            logger.debug(f"Could not parse locale {localeName}: {e}")
            return None

    def getHostLocale(self):
        """
        Detect the locale the host uses for character classification.

        Looks at LANGUAGE, LC_ALL, LC_CTYPE and LANG through babel first, then at the
        process locale reported by the locale module.

        Returns:
            babel.Locale or None
        """
        candidates = [default_locale('LC_CTYPE')]
        try:
            candidates.append(locale.getlocale(locale.LC_CTYPE)[0])
        except ValueError as e:
            logger.debug(f"locale.getlocale failed: {e}")

        for candidate in candidates:
            hostLocale = self.parseLocale(candidate)
            if hostLocale is not None:
                return hostLocale

        return None

    def _mapBabelLocaleToLanguageCode(self, babelLocale):
        """
        Map babel Locale object to our language code format.

        Args:
            babelLocale: babel.Locale object

        Returns:
            Language code string (e.g., 'en', 'ja', 'zh_Hant', 'zh_Hans')
        """
        if babelLocale.language == 'zh':
            if babelLocale.script == 'Hant' or babelLocale.territory in ('TW', 'HK', 'MO'):
                return 'zh_Hant'
            return 'zh_Hans'

        return babelLocale.language

    def _loadOrDetectLanguage(self):
        """Load saved language preference or detect from OS"""
        config = self._loadConfig()

        if 'language' in config:
            self.currentLanguage = config['language']
            logger.debug(f"Loaded language preference from config: {self.currentLanguage}")
        else:
            hostLocale = self.getHostLocale()
            self.currentLanguage = (
                self._mapBabelLocaleToLanguageCode(hostLocale) if hostLocale else self.DEFAULT_LANGUAGE
            )
            logger.debug(f"Auto-detected OS language: {self.currentLanguage}")

        if self.currentLanguage not in self.SUPPORTED_LANGUAGES:
            logger.debug(f"Unsupported language '{self.currentLanguage}', falling back to {self.DEFAULT_LANGUAGE}")
            self.currentLanguage = self.DEFAULT_LANGUAGE

    def _loadConfig(self):
        """Load i18n configuration from JSON file"""
        if not os.path.exists(self.configPath):
            return {}

        try:
            with open(self.configPath, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to load i18n config: {e}")
            return {}

        return config if isinstance(config, dict) else {}

    def _getTranslation(self, language, domain=None):
        """Get gettext translation object for a language and domain (with caching)"""
        if domain is None:
            domain = self.DOMAIN_CORE

        cache = self.translationCache.setdefault(domain, {})
        if language in cache:
            return cache[language]

        moFile = os.path.join(self.localeDir, language, 'LC_MESSAGES', f'{domain}.mo')
        if not os.path.exists(moFile):
            logger.debug(f"Translation file not found: {moFile}, using fallback")
            translation = gettext.NullTranslations()
        else:
            translation = gettext.translation(domain, localedir=self.localeDir, languages=[language], fallback=True)
            logger.debug(f"Loaded translation for domain '{domain}', language: {language}")

        cache[language] = translation
        return translation

    def _(self, message, domain=None):
        """
        Translate message to current language (gettext-style function).

        Returns:
            Translated string, or original message if translation not found
        """
        return self._getTranslation(self.currentLanguage, domain).gettext(message)

    def setLanguage(self, langCode):
        """
        Change current language for this process.

        Args:
            langCode: Language code ('en', 'en_US', ...), ignored unless listed in SUPPORTED_LANGUAGES
        """
        babelLocale = self.parseLocale(langCode)
        normalizedLang = self._mapBabelLocaleToLanguageCode(babelLocale) if babelLocale else None

        if normalizedLang not in self.SUPPORTED_LANGUAGES:
            logger.warning(f"Unsupported language: {langCode}, ignoring")
            return

        self.currentLanguage = normalizedLang
        logger.info(f"Language changed to: {normalizedLang}")

    def getLanguage(self):
        """Get current language code"""
        return self.currentLanguage


def _(message, domain=None):
    """
    Translate message to current language.

    This is a module-level convenience function that automatically
    uses the I18nManager singleton.
    """
    return I18nManager.getInstance()._(message, domain)
