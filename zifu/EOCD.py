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

import io
import struct

from zifu.Kernel import getLogger
from zifu.Errors import EOCDNotFoundError, UnsupportedArchiveError

logger = getLogger(__name__)

EOCD_MAGIC = b'PK\x05\x06'

# disk, cd disk, entries on disk, entries, cd size, cd offset, comment length
EOCD_STRUCT = struct.Struct('<HHHHIIH')
EOCD_SIZE = len(EOCD_MAGIC) + EOCD_STRUCT.size # 22

MAX_COMMENT_LENGTH = 0xFFFF

ZIP64_U16 = 0xFFFF
ZIP64_U32 = 0xFFFFFFFF


class ZipEOCD:
    """End of central directory record, the entry point of every ZIP archive."""

    def __init__(
        self,
        eocdDiskIndex=0,
        cdStartDiskIndex=0,
        nCdEntriesInDisk=0,
        nCdEntries=0,
        cdSize=0,
        cdStartingPosition=0,
        comment=b'',
        startingPositionWithSignature=0,
    ):
        self.eocdDiskIndex = eocdDiskIndex
        self.cdStartDiskIndex = cdStartDiskIndex
        self.nCdEntriesInDisk = nCdEntriesInDisk
        self.nCdEntries = nCdEntries
        self.cdSize = cdSize
        self.cdStartingPosition = cdStartingPosition
        self.comment = bytes(comment)
        self.startingPositionWithSignature = startingPositionWithSignature

    @property
    def commentLength(self):
        return len(self.comment)

    @property
    def startingPositionWithoutSignature(self):
        return self.startingPositionWithSignature + len(EOCD_MAGIC)

    @classmethod
    def fromReader(cls, stream):
        """
        Locate and parse the EOCD record of a seekable binary stream.

        The archive comment may itself contain PK\\x05\\x06, so every occurrence in the
        tail window is tried from the front and only a record whose comment ends exactly
        at the end of the stream is accepted.

        Args:
            stream: Seekable binary file object

        Returns:
            ZipEOCD: The record, with its own position in startingPositionWithSignature

        Raises:
            EOCDNotFoundError: No candidate lines up with the end of the stream
        """
        fileSize = stream.seek(0, io.SEEK_END)
        leftBound = max(0, fileSize - (MAX_COMMENT_LENGTH + EOCD_SIZE + len(EOCD_MAGIC)))

        stream.seek(leftBound)
        tail = stream.read()

        start = 0
        while True:
            index = tail.find(EOCD_MAGIC, start)
            if index < 0:
                raise EOCDNotFoundError()

            eocd = cls._parseCandidate(tail, index, leftBound + index)
            if eocd is not None:
                logger.debug(
                    f'EOCD found at {eocd.startingPositionWithSignature}: {eocd.nCdEntries} entries, '
                    f'central directory at {eocd.cdStartingPosition} ({eocd.cdSize} bytes)'
                )
                return eocd

            logger.debug(f'Ignoring EOCD signature at {leftBound + index}, it does not end the file')
            start = index + 1

    @classmethod
    def _parseCandidate(cls, tail, index, position):
        """Parse the record at tail[index], None unless it ends exactly at the end of tail."""
        fieldsStart = index + len(EOCD_MAGIC)
        fields = tail[fieldsStart:fieldsStart + EOCD_STRUCT.size]
        if len(fields) < EOCD_STRUCT.size:
            return None

        (
            eocdDiskIndex,
            cdStartDiskIndex,
            nCdEntriesInDisk,
            nCdEntries,
            cdSize,
            cdStartingPosition,
            commentLength,
        ) = EOCD_STRUCT.unpack(fields)

        comment = tail[index + EOCD_SIZE:]
        if len(comment) != commentLength:
            return None

        return cls(
            eocdDiskIndex=eocdDiskIndex,
            cdStartDiskIndex=cdStartDiskIndex,
            nCdEntriesInDisk=nCdEntriesInDisk,
            nCdEntries=nCdEntries,
            cdSize=cdSize,
            cdStartingPosition=cdStartingPosition,
            comment=comment,
            startingPositionWithSignature=position,
        )

    def isSingleArchive(self):
        """True unless the archive is split over several disks."""
        return self.eocdDiskIndex == 0 and self.cdStartDiskIndex == 0 and self.nCdEntries == self.nCdEntriesInDisk

    def isZip64(self):
        """True if any field holds the sentinel that defers to a ZIP64 record."""
        return (
            ZIP64_U16 in (self.eocdDiskIndex, self.cdStartDiskIndex, self.nCdEntriesInDisk, self.nCdEntries) or
            ZIP64_U32 in (self.cdSize, self.cdStartingPosition)
        )

    def checkUnsupportedZipType(self):
        """
        Raises:
            UnsupportedArchiveError: For ZIP64 or split archives
        """
        if self.isZip64():
            raise UnsupportedArchiveError('ZIP64 archives are not supported', self.startingPositionWithSignature)

        if not self.isSingleArchive():
            raise UnsupportedArchiveError(
                'split (multi-disk) archives are not supported', self.startingPositionWithSignature
            )

    def write(self, sink):
        """
        Serialize the record.

        Returns:
            int: Number of bytes written (22 + comment length)
        """
        data = EOCD_MAGIC + EOCD_STRUCT.pack(
            self.eocdDiskIndex,
            self.cdStartDiskIndex,
            self.nCdEntriesInDisk,
            self.nCdEntries,
            self.cdSize,
            self.cdStartingPosition,
            self.commentLength,
        ) + self.comment
        sink.write(data)
        return len(data)
