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

"""The stamp, upgrade, verify and info commands

Each *_command() takes the namespace returned by chronoclient.args.parse_args()
and exits non-zero on failure. The protocol work itself is done by
chronoproof.engine; this module deals with files and user feedback.
"""

import asyncio
import binascii
import logging
import os
import sys
import time

from bitcoin.core import b2x

import chronoproof.engine
from chronoproof.bitcoin import BlockchainError
from chronoproof.calendar import CalendarError, RemoteCalendar
from chronoproof.core.op import OpSHA256
from chronoproof.core.serialize import (BadMagicError, DeserializationError,
                                        StreamDeserializationContext, StreamSerializationContext)
from chronoproof.core.timestamp import DetachedTimestampFile

import chronoclient

DEFAULT_CALENDARS = ['https://a.pool.opentimestamps.org',
                     'https://b.pool.opentimestamps.org',
                     'https://a.pool.eternitywall.com']

TIMESTAMP_SUFFIX = '.ots'
BACKUP_SUFFIX = '.bak'


def fail(msg):
    logging.error(msg)
    sys.exit(1)


def remote_calendar(calendar_uri):
    """Calendar client identifying itself as this version of chronoproof"""
    return RemoteCalendar(calendar_uri, user_agent="chronoproof/%s" % chronoclient.__version__)


def read_detached_timestamp(fd):
    try:
        return DetachedTimestampFile.deserialize(StreamDeserializationContext(fd))
    except BadMagicError:
        fail("%r is not a timestamp file" % fd.name)
    except DeserializationError as exp:
        fail("Timestamp file %r is invalid: %s" % (fd.name, exp))


def write_detached_timestamp(detached_timestamp, fd):
    detached_timestamp.serialize(StreamSerializationContext(fd))


def stamp_command(args):
    if not args.files:
        args.files = [sys.stdin.buffer]

    detached_timestamps = []
    for fd in args.files:
        try:
            detached_timestamps.append(DetachedTimestampFile.from_fd(OpSHA256(), fd))
        except OSError as exp:
            fail("Could not hash %r: %s" % (fd.name, exp))

    calendar_urls = args.calendar_urls or DEFAULT_CALENDARS
    calendars = [remote_calendar(url) for url in calendar_urls]

    try:
        tip = asyncio.run(chronoproof.engine.stamp(detached_timestamps, calendars,
                                                   m=args.m, timeout=args.timeout))
    except (CalendarError, ValueError) as exp:
        fail("Stamping failed: %s" % exp)

    if args.wait:
        upgrade_timestamp(tip, args)
        logging.info("Timestamp complete")

    for fd, detached_timestamp in zip(args.files, detached_timestamps):
        if fd is sys.stdin.buffer:
            write_detached_timestamp(detached_timestamp, sys.stdout.buffer)
            continue

        out_path = fd.name + TIMESTAMP_SUFFIX
        try:
            with open(out_path, 'xb') as out_fd:
                write_detached_timestamp(detached_timestamp, out_fd)
        except OSError as exp:
            fail("Could not write %r: %s" % (out_path, exp))
        logging.info("Wrote %s" % out_path)


def upgrade_from_cache(timestamp, cache):
    """Merge cached timestamps into every node of timestamp

    Returns True if that added any attestations.
    """
    before = timestamp.get_attestations()

    # walk() yields nodes that merge() may add children to
    for node in list(timestamp.walk()):
        if node.msg in cache:
            node.merge(cache[node.msg])

    added = timestamp.get_attestations() - before
    for attestation in sorted(added):
        logging.debug("From cache: %s" % attestation)
    if added:
        logging.info("Got %d attestation(s) from the cache" % len(added))
    return bool(added)


def upgrade_timestamp(timestamp, args):
    """Upgrade a timestamp from the cache, then from calendars

    Calendars are asked again, every args.wait_interval seconds, for as long
    as the timestamp is incomplete and args.wait is set.

    Returns True if the timestamp changed. An already complete timestamp is
    left alone, so that returns False.
    """
    changed = upgrade_from_cache(timestamp, args.cache)

    calendar_urls = getattr(args, 'calendar_urls', None)
    if args.whitelist is None and not calendar_urls:
        if not timestamp.is_complete():
            logging.warning("Remote calendars disabled; not asking them for upgrades")
        return changed

    while not timestamp.is_complete():
        try:
            got_new = asyncio.run(chronoproof.engine.upgrade_timestamp(timestamp,
                                                                       calendar_factory=remote_calendar,
                                                                       whitelist=args.whitelist,
                                                                       calendar_urls=calendar_urls,
                                                                       cache=args.cache))
        except CalendarError:
            got_new = False

        if got_new:
            changed = True
        elif args.wait:
            logging.info("Timestamp incomplete; trying again in %d seconds" % args.wait_interval)
            time.sleep(args.wait_interval)
        else:
            break

    return changed


def replace_timestamp_file(path, detached_timestamp):
    """Move path to path.bak, then write detached_timestamp to path"""
    backup_path = path + BACKUP_SUFFIX
    if os.path.exists(backup_path):
        fail("Backup %r already exists; not overwriting it" % backup_path)

    logging.debug("Moving %r to %r" % (path, backup_path))
    try:
        os.rename(path, backup_path)
    except OSError as exp:
        fail("Could not back up %r: %s" % (path, exp))

    try:
        with open(path, 'xb') as fd:
            write_detached_timestamp(detached_timestamp, fd)
    except OSError as exp:
        fail("Could not write upgraded timestamp %r: %s" % (path, exp))


def upgrade_command(args):
    all_complete = True
    for fd in args.files:
        logging.debug("Upgrading %s" % fd.name)
        detached_timestamp = read_detached_timestamp(fd)
        fd.close()

        changed = upgrade_timestamp(detached_timestamp.timestamp, args)
        if changed and not args.dry_run:
            replace_timestamp_file(fd.name, detached_timestamp)

        if detached_timestamp.timestamp.is_complete():
            logging.info("%s: complete" % fd.name)
        else:
            logging.warning("%s: not complete" % fd.name)
            all_complete = False

    if not all_complete:
        sys.exit(1)


def verify_timestamp(timestamp, args):
    """Upgrade a timestamp from its own calendars, then verify it

    Returns a chronoproof.engine.VerificationResult
    """
    args.calendar_urls = []
    upgrade_timestamp(timestamp, args)

    if not timestamp.is_complete():
        logging.warning("Only pending attestations; nothing to verify yet")
        return chronoproof.engine.VerificationResult.INCOMPLETE
    elif not args.use_bitcoin:
        logging.warning("Bitcoin disabled; not verifying Bitcoin attestations")
        return chronoproof.engine.VerificationResult.INCOMPLETE

    blockchain = args.setup_bitcoin()
    try:
        return asyncio.run(chronoproof.engine.verify_timestamp(timestamp, blockchain))
    except BlockchainError as exp:
        fail("%s" % exp)


def target_digest(args, detached_timestamp):
    """Digest the timestamp should commit to, from -d, -f or the timestamp's name"""
    if args.hex_digest is not None:
        try:
            return binascii.unhexlify(args.hex_digest.encode('utf8'))
        except ValueError:
            args.parser.error('Digest must be hexadecimal')

    target_fd = args.target_fd
    if target_fd is None:
        timestamp_path = args.timestamp_fd.name
        if not timestamp_path.endswith(TIMESTAMP_SUFFIX):
            args.parser.error('Timestamp filename does not end in %s; use -f' % TIMESTAMP_SUFFIX)

        target_path = timestamp_path[:-len(TIMESTAMP_SUFFIX)]
        logging.info("Assuming target filename is %r" % target_path)
        try:
            target_fd = open(target_path, 'rb')
        except OSError as exp:
            fail('Could not open target: %s' % exp)

    with target_fd:
        digest = detached_timestamp.file_hash_op.hash_fd(target_fd)
    logging.debug("%s of target: %s" % (detached_timestamp.file_hash_op.TAG_NAME, b2x(digest)))
    return digest


def verify_command(args):
    detached_timestamp = read_detached_timestamp(args.timestamp_fd)
    digest = target_digest(args, detached_timestamp)

    try:
        chronoproof.engine.check_digest(detached_timestamp, digest)
    except chronoproof.engine.DigestMismatchError as exp:
        logging.debug("%s" % exp)
        fail("File does not match original!")

    result = verify_timestamp(detached_timestamp.timestamp, args)
    if result is not chronoproof.engine.VerificationResult.VERIFIED:
        sys.exit(1)


def info_command(args):
    detached_timestamp = read_detached_timestamp(args.file)

    print("File %s hash: %s" % (detached_timestamp.file_hash_op.TAG_NAME, b2x(detached_timestamp.file_digest)))
    print("Timestamp:")
    print(detached_timestamp.timestamp.str_tree(verbosity=args.verbosity))
