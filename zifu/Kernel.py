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

import os
import json
import logging
import platform
import threading

# Error reporting is only enabled when a SENTRY_DSN secret is configured,
# either in the environment or in the .secret file found by StorageLocator.
import sentry_sdk

from pathlib import Path

from sentry_sdk.integrations.logging import SentryHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '0.4.0'

APP_NAME = 'zifu'

# Map string levels to logging constants for standard level names
LOG_LEVEL_MAPPING = {'DEBUG': logging.DEBUG, 'INFO': logging.INFO, 'WARNING': logging.WARNING, 'ERROR': logging.ERROR}


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Add console handler if none exists
    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        # Update existing handlers
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, SentryHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


if os.getenv('ZIFU_LOGGING_LEVEL'):
    logLevel = LOG_LEVEL_MAPPING.get(os.getenv('ZIFU_LOGGING_LEVEL').upper())
    if logLevel is not None:
        configureGlobalLogLevel(logLevel)


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger with Sentry integration. Uses Sentry's own client state to avoid duplicate setup.
    SENTRY_DSN is loaded lazily via SecretGetter, nothing is reported when it is absent.

    Args:
        name: Logger name
        version: Version string for logging context
    """
    logger = None

    try:
        notInit = not sentry_sdk.get_client().is_active()
        sentryInitialized = False

        if notInit:
            sentryDsn = SecretGetter.getInstance().get('SENTRY_DSN')

            if sentryDsn:
                # Suppress "sentry is attempting to send pending events..." at exit
                sentryAtexit.default_callback = lambda pending, timeout: None

                sentry_sdk.init(
                    dsn=sentryDsn,
                    release=f'{APP_NAME}@{version}',
                    default_integrations=False,
                    integrations=[
                        LoggingIntegration(),
                        sentryAtexit.AtexitIntegration(),
                    ],
                )
                sentryInitialized = True

        logger = logging.getLogger(name)

        # Add Sentry handler if not already present
        if not any(isinstance(h, SentryHandler) for h in logger.handlers):
            syslog = SentryHandler()
            syslog.setFormatter(logging.Formatter('%(asctime)s version[%(version)s] : %(message)s'))
            logger.addHandler(syslog)

        logger = logging.LoggerAdapter(logger, {'version': version or 'unknown'})

        if sentryInitialized:
            logger.debug(f'Sentry initialized for {APP_NAME} {version}')

        return logger

    except Exception as e:
        fallbackLogger = logging.getLogger(name)

        # If Sentry setup fails, log the error and continue with standard logging
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")

        return fallbackLogger


class Singleton:
    """
    Thread-safe singleton base class that can be inherited by other classes.
    Provides the standard singleton pattern with thread safety and getInstance() method.
    Subclasses override initialize() for custom initialization.
    """

    _instances = {}
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__new__(cls)
        return cls._instances[cls]

    def __init__(self, *args, **kwargs):
        """
        Only calls initialize() once for the lifetime of the singleton.
        Passes all arguments to the initialize method.
        """
        if not hasattr(self, '_initialized'):
            self.initialize(*args, **kwargs)
            self._initialized = True

    def initialize(self, *args, **kwargs):
        """
        Template method for subclasses, called once when the singleton is first created.
        """
        pass

    @classmethod
    def getInstance(cls):
        """
        Static access method for the singleton instance.
        """
        if cls not in cls._instances:
            cls()
        return cls._instances[cls]


class StorageLocator(Singleton):
    """
    Simple storage location resolution for configuration files (zifu.json, i18n.json, .secret).

    Environment Variables:
        ZIFU_STORAGE_LOCATION: Override storage location for testing and advanced users.
                               If set to an existing directory path, it is searched first.
    """

    class Location:
        CURRENT = 'current'
        HOME = 'home'
        PLATFORM = 'platform'
        SOURCE_BASE = 'source_base'

    def initialize(self, appName=APP_NAME):
        """Initialize with application name"""
        self.appName = appName
        self._homeDir = os.path.expanduser(f'~{os.path.sep}.{appName}')
        self._platformDir = self._getPlatformDir()
        self._sourceBaseDir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    def _getPlatformDir(self):
        """Get platform-specific directory"""
        system = platform.system()

        if system == 'Windows':
            appdata = os.getenv('APPDATA', os.path.expanduser('~'))
            return os.path.join(appdata, self.appName)
        elif system == 'Darwin': # macOS
            return os.path.expanduser(f'~/Library/Application Support/{self.appName}')
        else: # Linux and others
            return os.path.expanduser(f'~/.config/{self.appName}')

    def _getEnvStorageLocation(self):
        """
        Get storage location from ZIFU_STORAGE_LOCATION environment variable

        Returns:
            str or None: Valid storage location path if environment variable is set
                        and points to an existing directory, None otherwise
        """
        envStorageLocation = os.getenv('ZIFU_STORAGE_LOCATION')
        if envStorageLocation and os.path.isdir(envStorageLocation):
            return envStorageLocation
        return None

    def findStorage(self, filename, prefer=None):
        """
        Find storage location for reading config/data files
        Default priority: current -> home -> platform -> source_base
        If prefer specified: prefer location first, then original sequence

        Args:
            filename: Name of the file to find
            prefer: Preferred location (Location.CURRENT, Location.HOME, Location.PLATFORM, Location.SOURCE_BASE)

        Returns:
            Path to the file (may not exist)
        """
        envStorageLocation = self._getEnvStorageLocation()
        if envStorageLocation:
            envPath = os.path.join(envStorageLocation, filename)
            if os.path.exists(envPath):
                return envPath

        candidates = {
            self.Location.CURRENT: os.path.abspath(filename),
            self.Location.HOME: os.path.join(self._homeDir, filename),
            self.Location.PLATFORM: os.path.join(self._platformDir, filename),
            self.Location.SOURCE_BASE: os.path.join(self._sourceBaseDir, filename),
        }

        preferPath = candidates.get(prefer)
        if preferPath and os.path.exists(preferPath):
            return preferPath

        for path in candidates.values():
            if os.path.exists(path):
                return path

        # Nothing found, return the environment path if available, otherwise home directory path
        if envStorageLocation:
            return os.path.join(envStorageLocation, filename)

        return candidates[self.Location.HOME]

    def findConfig(self, filename, prefer=None):
        """
        Find configuration file, alias for findStorage.

        Returns:
            Path to the config file (may not exist)
        """
        return self.findStorage(filename, prefer=prefer)


class SecretGetter(Singleton):
    """
    Manages secrets with caching mechanism.
    Searches for secrets in environment variables first, then in .secret file using StorageLocator.
    """

    DEFAULT_SECRET_FILE = '.secret'

    def initialize(self, secretFileName=DEFAULT_SECRET_FILE):
        """Initialize SecretGetter with secret file name"""
        self.secretFileName = secretFileName
        self._cache = {}
        self._secretData = None

    def getPath(self):
        return StorageLocator.getInstance().findStorage(self.secretFileName)

    def _loadSecretFile(self):
        """Load secret file using StorageLocator"""
        if self._secretData is not None:
            return

        secretPath = self.getPath()

        if not os.path.exists(secretPath):
            self._secretData = {}
            return

        # Plain logging here, getLogger() depends on this class
        logger = logging.getLogger(__name__)
        try:
            self._secretData = json.loads(Path(secretPath).read_text())
            logger.info(f"Loaded secret file {secretPath}")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load secret file {secretPath}: {e}")
            self._secretData = {}

    def get(self, key: str):
        """
        Get secret value by key with caching.

        Args:
            key: Secret key to retrieve

        Returns:
            str or None: Secret value if found, None otherwise
        """
        if self._cache.get(key):
            return self._cache[key]

        value = os.getenv(key)
        if value:
            self._cache[key] = value
            return value

        self._loadSecretFile()

        value = self._secretData.get(key)
        if value:
            self._cache[key] = value

        return value

    def clear(self):
        """Drop cached secrets so the next get() reads environment and file again."""
        self._cache.clear()
        self._secretData = None
