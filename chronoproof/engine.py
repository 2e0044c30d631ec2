# Copyright (C) 2026 The chronoproof developers
#
# This file is part of chronoproof.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of chronoproof including this file, may be copied, modified,
# propagated, or distributed except according to the terms contained in the
# LICENSE file.

"""Stamping, verification and upgrading of timestamps

Everything that talks to a calendar or a blockchain source is a coroutine.
Collaborator methods may themselves be coroutine functions, or ordinary
blocking functions such as RemoteCalendar's, which are run in a worker
thread. There are no implicit timeouts; callers wrap these coroutines in
their own deadlines.

Timestamps are only ever modified from the coroutine, never from worker
threads, and only with complete, deserialized results.
"""

import asyncio
import enum
import inspect
import logging

from bitcoin.core import b2x

from chronoproof.calendar import CalendarError, CommitmentNotFoundError, RemoteCalendar
from chronoproof.core.notary import BitcoinBlockHeaderAttestation, PendingAttestation, VerificationError
from chronoproof.core.op import OpSHA256
from chronoproof.core.timestamp import make_merkle_tree
from chronoproof.timestamp import nonce_timestamp


class DigestMismatchError(ValueError):
    """The artifact's digest isn't the digest the timestamp is for"""


class VerificationResult(enum.Enum):
    VERIFIED = 'verified'
    """A Bitcoin attestation checked out"""

    FAILED = 'failed'
    """A Bitcoin attestation didn't match the block's merkle root"""

    INCOMPLETE = 'incomplete'
    """No Bitcoin attestation yet; only pending or unknown ones"""


async def _call(func, *args, **kwargs):
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    else:
        return await asyncio.to_thread(func, *args, **kwargs)


async def create_timestamp(timestamp, calendars, m=1, timeout=None):
    """Submit a timestamp's message to calendars, merging what they return

    All calendars are contacted concurrently. Waits at most timeout seconds,
    if given, and fails with CalendarError unless at least m calendars
    answered. Each calendar's submit() is passed the same timeout.

    Returns the number of calendar timestamps merged.
    """
    n = len(calendars)
    if m > n or m <= 0:
        raise ValueError("m (%d) cannot be greater than available calendar%s (%d) neither less or equal 0" % (m, "" if n == 1 else "s", n))

    logging.debug("Doing %d-of-%d request, timeout is %s" % (m, n, "%s seconds" % timeout if timeout is not None else "unlimited"))

    tasks = []
    for calendar in calendars:
        logging.info('Submitting to remote calendar %s' % getattr(calendar, 'url', calendar))
        tasks.append(asyncio.ensure_future(_call(calendar.submit, timestamp.msg, timeout=timeout)))

    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    merged = 0
    for calendar, task in zip(calendars, tasks):
        if task not in done:
            logging.debug("Calendar %s timed out" % getattr(calendar, 'url', calendar))
            continue

        exp = task.exception()
        if exp is not None:
            logging.debug("Calendar %s: %s" % (getattr(calendar, 'url', calendar), exp))
            continue

        try:
            timestamp.merge(task.result())
        except ValueError as exp:
            logging.debug("Calendar %s returned an invalid timestamp: %s" % (getattr(calendar, 'url', calendar), exp))
            continue
        merged += 1

    if merged < m:
        raise CalendarError("Failed to create timestamp: need at least %d attestation%s but received %d" % (m, "" if m == 1 else "s", merged))

    return merged


async def stamp(file_timestamps, calendars, m=1, timeout=None, nonce=None):
    """Timestamp one or more detached timestamp files

    Each file's timestamp gets a nonce appended and is hashed with SHA256;
    the results are combined into a merkle tree whose tip is submitted to the
    calendars. Every file timestamp ends up holding the calendars' answers.

    Returns the merkle tip.
    """
    merkle_roots = []
    for file_timestamp in file_timestamps:
        merkle_roots.append(nonce_timestamp(file_timestamp.timestamp, OpSHA256(), nonce=nonce))

    merkle_tip = make_merkle_tree(merkle_roots)

    await create_timestamp(merkle_tip, calendars, m=m, timeout=timeout)
    return merkle_tip


def check_digest(detached_timestamp, actual_digest):
    """Raise DigestMismatchError unless the digest matches the timestamp's"""
    if actual_digest != detached_timestamp.file_digest:
        raise DigestMismatchError("Expected digest %s (%s); got %s" %
                                  (b2x(detached_timestamp.file_digest),
                                   detached_timestamp.file_hash_op.TAG_NAME,
                                   b2x(actual_digest)))


async def verify_timestamp(timestamp, blockchain):
    """Verify a timestamp against a source of Bitcoin block data

    Only the first Bitcoin attestation found is checked; one is enough.
    BlockchainError is propagated.
    """
    for msg, attestation in timestamp.all_attestations():
        if attestation.__class__ != BitcoinBlockHeaderAttestation:
            continue

        blockhash = await _call(blockchain.get_block_hash, attestation.height)
        merkleroot = await _call(blockchain.get_merkle_root, blockhash)

        try:
            attestation.verify_against_merkleroot(msg, merkleroot)
        except VerificationError as err:
            logging.error("Bitcoin verification failed: %s" % str(err))
            return VerificationResult.FAILED

        logging.info("Success! Bitcoin block %d attests data existed" % attestation.height)
        return VerificationResult.VERIFIED

    logging.info("Timestamp not complete; no Bitcoin attestation found")
    return VerificationResult.INCOMPLETE


async def verify(detached_timestamp, data, blockchain):
    """Verify a detached timestamp against the data it's for

    Raises DigestMismatchError if the data doesn't match.
    """
    logging.debug("Hashing data, algorithm %s" % detached_timestamp.file_hash_op.TAG_NAME)
    check_digest(detached_timestamp, detached_timestamp.file_hash_op.hash_bytes(data))
    return await verify_timestamp(detached_timestamp.timestamp, blockchain)


async def upgrade_timestamp(timestamp, calendar_factory=RemoteCalendar, whitelist=None,
                            calendar_urls=None, cache=None):
    """Attempt to upgrade an incomplete timestamp, one step

    Pending attestations are tried in order, asking the calendar each one
    names (or calendar_urls, if given, instead) what it now knows about the
    attested message. Stops at the first answer carrying attestations the
    timestamp doesn't already have, merging it in.

    Returns True if the timestamp has changed, False otherwise. A timestamp
    that is already complete is never changed. Callers wanting a complete
    timestamp call this again, on their own schedule.

    If nothing changed and a calendar failed, the CalendarError is raised so
    that the caller knows a retry might help.
    """
    if timestamp.is_complete():
        return False

    existing_attestations = timestamp.get_attestations()
    calendar_error = None

    for sub_stamp in timestamp.directly_verified():
        for attestation in sorted(sub_stamp.attestations):
            if attestation.__class__ != PendingAttestation:
                continue

            if calendar_urls:
                urls = calendar_urls
            elif whitelist is not None and attestation.uri not in whitelist:
                logging.warning("Ignoring attestation from calendar %s: Calendar not in whitelist" % attestation.uri)
                continue
            else:
                urls = [attestation.uri]

            commitment = sub_stamp.msg
            for calendar_url in urls:
                logging.debug("Checking calendar %s for %s" % (calendar_url, b2x(commitment)))
                calendar = calendar_factory(calendar_url)

                try:
                    upgraded_stamp = await _call(calendar.get_timestamp, commitment)
                except CommitmentNotFoundError as exp:
                    logging.warning("Calendar %s: %s" % (calendar_url, exp.reason))
                    continue
                except CalendarError as exp:
                    logging.warning("%s" % exp)
                    calendar_error = calendar_error or exp
                    continue

                atts_from_remote = upgraded_stamp.get_attestations()
                if atts_from_remote:
                    logging.info("Got %d attestation(s) from %s" % (len(atts_from_remote), calendar_url))
                    for att in sorted(atts_from_remote):
                        logging.debug("    %r" % att)

                if not atts_from_remote.difference(existing_attestations):
                    continue

                try:
                    sub_stamp.merge(upgraded_stamp)
                except ValueError as exp:
                    logging.warning("Calendar %s returned an invalid timestamp: %s" % (calendar_url, exp))
                    continue

                if cache is not None:
                    cache.merge(upgraded_stamp)

                return True

    if calendar_error is not None:
        raise calendar_error

    return False
