# Copyright (C) 2026 The chronoproof developers
#
# This file is part of the chronoproof client.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of the chronoproof client, including this file, may be copied,
# modified, propagated, or distributed except according to the terms contained
# in the LICENSE file.

"""On-disk cache of timestamps

Every timestamp the client learns about, whether from a calendar or a proof
file, can be saved here keyed by its commitment, so that later upgrades can
be done without asking the network again.

Layout::

    <path>/version
    <path>/ab/cd/ef/01/abcdef01...    serialized Timestamp for commitment abcdef01...
"""

import logging
import os

import appdirs
from bitcoin.core import b2x

from chronoproof.core.serialize import DeserializationError, StreamDeserializationContext, StreamSerializationContext
from chronoproof.core.timestamp import Timestamp

DEFAULT_CACHE_PATH = appdirs.user_cache_dir('chronoproof')

CACHE_MAJOR_VERSION = 1
CACHE_MINOR_VERSION = 0

MIN_COMMITMENT_LENGTH = 20
MAX_COMMITMENT_LENGTH = 64

PREFIX_DEPTH = 4


def _cacheable(commitment):
    return MIN_COMMITMENT_LENGTH <= len(commitment) <= MAX_COMMITMENT_LENGTH


class TimestampCache:
    """Timestamps stored under a directory, one file per commitment

    With path None the cache is disabled: lookups always miss and merges are
    discarded.
    """

    def __init__(self, path):
        self.path = path
        if path is not None:
            self._open_or_create()

    def _open_or_create(self):
        version_path = os.path.join(self.path, 'version')
        try:
            with open(version_path, 'r') as fd:
                version = fd.read().strip()
        except FileNotFoundError:
            os.makedirs(self.path, exist_ok=True)
            with open(version_path, 'w') as fd:
                fd.write('%d.%d\n' % (CACHE_MAJOR_VERSION, CACHE_MINOR_VERSION))
            return

        major, _, minor = version.partition('.')
        if not (major.isdigit() and minor.isdigit()) or int(major) != CACHE_MAJOR_VERSION:
            raise ValueError("Unknown timestamp cache version %r in %r" % (version, self.path))

    def _entry_path(self, commitment):
        hex_commitment = b2x(commitment)
        prefixes = [hex_commitment[i*2:i*2+2] for i in range(PREFIX_DEPTH)]
        return os.path.join(self.path, *prefixes, hex_commitment)

    def __contains__(self, commitment):
        try:
            self[commitment]
        except KeyError:
            return False
        return True

    def __getitem__(self, commitment):
        if self.path is None or not _cacheable(commitment):
            raise KeyError(commitment)

        try:
            with open(self._entry_path(commitment), 'rb') as fd:
                return Timestamp.deserialize(StreamDeserializationContext(fd), commitment)
        except FileNotFoundError:
            raise KeyError(commitment)
        except DeserializationError as exp:
            logging.warning("Cache entry for %s is corrupt, ignoring it: %s" % (b2x(commitment), exp))
            raise KeyError(commitment)

    def _write(self, timestamp):
        path = self._entry_path(timestamp.msg)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        # readers must never see a partial entry
        partial_path = path + '.partial'
        with open(partial_path, 'wb') as fd:
            timestamp.serialize(StreamSerializationContext(fd))
        os.replace(partial_path, path)

    def merge(self, new_timestamp):
        """Add everything new_timestamp knows to the cached entry for its message"""
        if self.path is None or not _cacheable(new_timestamp.msg):
            return
        elif not (new_timestamp.attestations or new_timestamp.ops):
            return

        try:
            combined = self[new_timestamp.msg]
        except KeyError:
            combined = Timestamp(new_timestamp.msg)

        combined.merge(new_timestamp)
        self._write(combined)
