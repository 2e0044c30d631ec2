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

"""Calendar server interface

A calendar accepts digests with submit(), answering with a timestamp that
usually carries a PendingAttestation pointing back at the calendar, and later
resolves those digests into Bitcoin attestations through get_timestamp().
Anything with those two methods can stand in for RemoteCalendar.
"""

import binascii
import fnmatch
import urllib.error
import urllib.parse
import urllib.request

from chronoproof.core.timestamp import Timestamp
from chronoproof.core.serialize import BytesDeserializationContext, DeserializationError


# Printable, single line; a calendar can't forge extra log lines.
_SAFE_MSG_CHARS = frozenset(b'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789#-.,; ')

_MAX_ERROR_MSG_LENGTH = 160


def get_sanitised_resp_msg(resp):
    """Read the start of an error response body as text safe to display

    Characters outside a small set, newlines included, become '_'.
    """
    raw = resp.read(_MAX_ERROR_MSG_LENGTH)
    return ''.join(chr(c) if c in _SAFE_MSG_CHARS else '_' for c in raw)


class CalendarError(Exception):
    """Talking to a calendar failed

    Usually transient; the caller may retry later.
    """

class CommitmentNotFoundError(KeyError):
    """The calendar has no timestamp for the commitment (yet)"""

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class RemoteCalendar:
    """A calendar server reached over HTTP(S)

    Requests are blocking; the engine runs them in worker threads.
    """

    MAX_RESPONSE_SIZE = 10000

    ACCEPT = "application/vnd.opentimestamps.v1"

    def __init__(self, url, user_agent="chronoproof"):
        if not isinstance(url, str):
            raise TypeError("Calendar URL must be a str; got %r" % url.__class__)
        self.url = url
        self.user_agent = user_agent

    def __repr__(self):
        return 'RemoteCalendar(%r)' % self.url

    def _request(self, path, msg, data=None, timeout=None):
        """Fetch url + path and parse the body as a timestamp for msg"""
        req = urllib.request.Request(self.url + path, data=data,
                                     headers={'Accept': self.ACCEPT, 'User-Agent': self.user_agent})
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                status = resp.status
                body = resp.read(self.MAX_RESPONSE_SIZE + 1)
        except urllib.error.HTTPError as exp:
            if exp.code == 404:
                raise CommitmentNotFoundError(get_sanitised_resp_msg(exp))
            raise CalendarError("%s: HTTP status %d" % (self.url, exp.code))
        except urllib.error.URLError as exp:
            raise CalendarError("%s: %s" % (self.url, exp.reason))
        except OSError as exp:
            raise CalendarError("%s: %s" % (self.url, exp))

        if status != 200:
            raise CalendarError("%s: unexpected HTTP status %d" % (self.url, status))
        elif len(body) > self.MAX_RESPONSE_SIZE:
            raise CalendarError("%s: response larger than %d bytes" % (self.url, self.MAX_RESPONSE_SIZE))

        try:
            return Timestamp.deserialize(BytesDeserializationContext(body), msg)
        except DeserializationError as exp:
            raise CalendarError("%s: bad timestamp in response: %s" % (self.url, exp))

    def submit(self, digest, timeout=None):
        """Submit a digest, returning the calendar's Timestamp for it

        The timestamp normally ends in a PendingAttestation.
        """
        return self._request('/digest', digest, data=digest, timeout=timeout)

    def get_timestamp(self, commitment, timeout=None):
        """Ask for the timestamp of a commitment the calendar was given earlier

        Raises CommitmentNotFoundError if the calendar doesn't know the
        commitment, or hasn't anchored it yet.
        """
        return self._request('/timestamp/' + binascii.hexlify(commitment).decode('utf8'), commitment,
                             timeout=timeout)


class UrlWhitelist(set):
    """Calendar URLs we're willing to contact

    Entries are URLs whose host part may contain shell-style globs. An entry
    given without a scheme allows both http and https.
    """

    def __init__(self, urls=()):
        super().__init__()
        for url in urls:
            self.add(url)

    @staticmethod
    def _has_extras(parsed_url):
        return bool(parsed_url.params or parsed_url.query or parsed_url.fragment)

    def add(self, url):
        if not isinstance(url, str):
            raise TypeError("URL must be a str; got %r" % url.__class__)

        if not url.startswith(('http://', 'https://')):
            for scheme in ('http://', 'https://'):
                self.add(scheme + url)
            return

        pattern = urllib.parse.urlparse(url)
        if self._has_extras(pattern):
            raise ValueError("Whitelisted URL %r can't have params, a query or a fragment" % url)
        super().add(pattern)

    def __contains__(self, url):
        candidate = urllib.parse.urlparse(url)
        if self._has_extras(candidate):
            return False

        return any(candidate.scheme == pattern.scheme
                   and candidate.path == pattern.path
                   and fnmatch.fnmatch(candidate.netloc, pattern.netloc)
                   for pattern in self)
