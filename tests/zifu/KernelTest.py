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
import logging
import os
import tempfile
import unittest

from unittest.mock import patch

from zifu.Kernel import SecretGetter, Singleton, StorageLocator, configureGlobalLogLevel, getLogger


class SingletonTest(unittest.TestCase):

    def testInitializeOnce(self):
        """initialize() runs for the first construction only."""

        class Counter(Singleton):

            def initialize(self, start=0):
                self.value = start

        first = Counter(start=5)
        second = Counter(start=10)
        self.assertIs(first, second)
        self.assertEqual(second.value, 5)
        self.assertIs(Counter.getInstance(), first)


class StorageLocatorTest(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.mkdtemp()
        self.storageLocator = StorageLocator.getInstance()

    def tearDown(self):
        for name in os.listdir(self.tempDir):
            os.remove(os.path.join(self.tempDir, name))
        os.rmdir(self.tempDir)

    def testEnvironmentOverride(self):
        configPath = os.path.join(self.tempDir, 'zifu.json')
        with open(configPath, 'w', encoding='utf-8') as f:
            f.write('{}')

        with patch.dict(os.environ, {'ZIFU_STORAGE_LOCATION': self.tempDir}):
            self.assertEqual(self.storageLocator.findConfig('zifu.json'), configPath)

            # Missing files still resolve inside the override directory
            self.assertEqual(
                self.storageLocator.findConfig('missing-config.json'), os.path.join(self.tempDir, 'missing-config.json')
            )

    def testInvalidEnvironmentOverride(self):
        with patch.dict(os.environ, {'ZIFU_STORAGE_LOCATION': os.path.join(self.tempDir, 'nope')}):
            path = self.storageLocator.findConfig('missing-config.json')
            self.assertTrue(path.endswith('missing-config.json'))
            self.assertNotIn('nope', path)


class SecretGetterTest(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.mkdtemp()
        self.secretGetter = SecretGetter.getInstance()
        self.secretGetter.clear()

    def tearDown(self):
        self.secretGetter.clear()
        for name in os.listdir(self.tempDir):
            os.remove(os.path.join(self.tempDir, name))
        os.rmdir(self.tempDir)

    def testEnvironmentFirst(self):
        with patch.dict(os.environ, {'ZIFU_TEST_SECRET': 'from-env'}):
            self.assertEqual(self.secretGetter.get('ZIFU_TEST_SECRET'), 'from-env')

    def testSecretFile(self):
        secretPath = os.path.join(self.tempDir, '.secret')
        with open(secretPath, 'w') as f:
            json.dump({'ZIFU_TEST_SECRET': 'from-file'}, f)

        with patch.object(self.secretGetter, 'getPath', return_value=secretPath):
            self.assertEqual(self.secretGetter.get('ZIFU_TEST_SECRET'), 'from-file')
            self.assertIsNone(self.secretGetter.get('ZIFU_OTHER_SECRET'))

    def testInvalidSecretFile(self):
        secretPath = os.path.join(self.tempDir, '.secret')
        with open(secretPath, 'w') as f:
            f.write('not json')

        with patch.object(self.secretGetter, 'getPath', return_value=secretPath):
            self.assertIsNone(self.secretGetter.get('ZIFU_TEST_SECRET'))


class GetLoggerTest(unittest.TestCase):

    def testVersionContext(self):
        logger = getLogger('zifu.test', version='9.9.9')
        self.assertIsInstance(logger, logging.LoggerAdapter)
        self.assertEqual(logger.extra, {'version': '9.9.9'})

        with self.assertLogs('zifu.test', level='WARNING') as captured:
            logger.warning('something happened')
        self.assertEqual(captured.records[0].version, '9.9.9')


class ConfigureGlobalLogLevelTest(unittest.TestCase):

    def setUp(self):
        self.rootLogger = logging.getLogger()
        self.originalLevel = self.rootLogger.level

    def tearDown(self):
        self.rootLogger.setLevel(self.originalLevel)

    def testUpdatesExistingHandlers(self):
        """Root level and existing stream handlers follow the configured level."""
        handler = logging.StreamHandler()
        with patch.object(self.rootLogger, 'handlers', [handler]):
            configureGlobalLogLevel(logging.ERROR)

            self.assertEqual(self.rootLogger.level, logging.ERROR)
            self.assertEqual(handler.level, logging.ERROR)
            self.assertEqual(self.rootLogger.handlers, [handler])

    def testAddsConsoleHandler(self):
        with patch.object(self.rootLogger, 'handlers', []):
            configureGlobalLogLevel(logging.DEBUG)

            self.assertEqual(len(self.rootLogger.handlers), 1)
            self.assertIsInstance(self.rootLogger.handlers[0], logging.StreamHandler)
            self.assertEqual(self.rootLogger.handlers[0].level, logging.DEBUG)


if __name__ == '__main__':
    unittest.main()
