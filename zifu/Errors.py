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

# =============================================================================
# Archive Exception Classes
# =============================================================================


class ZipReadError(Exception):
    """Base exception for archives that cannot be read or repaired"""

    def __init__(self, reason, position=None):
        super().__init__(reason if position is None else f'{reason} (at offset {position})')
        self.reason = reason
        self.position = position


class InvalidArchiveError(ZipReadError):
    """Raised when a structure is malformed: missing magic number or declared lengths beyond the data"""
    pass


class EOCDNotFoundError(InvalidArchiveError):
    """Raised when no end of central directory record lines up with the end of the file"""

    def __init__(self, reason='valid end of central directory signature (PK\\x05\\x06) was not found'):
        super().__init__(reason)


class UnsupportedArchiveError(ZipReadError):
    """Raised for well-formed archives this tool refuses to rewrite (split, ZIP64, encrypted...)"""
    pass


class NoDecoderMatchError(ZipReadError):
    """Raised when none of the candidate encodings can decode every file name and comment"""

    def __init__(self, encodingNames):
        self.encodingNames = list(encodingNames)
        super().__init__(f"no encoding among [{', '.join(self.encodingNames)}] can decode all file names")
