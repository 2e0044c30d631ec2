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

"""Command line parsing

All configuration comes from the command line. handle_common_options() turns
the parsed options into the objects the commands use: args.cache,
args.whitelist and args.setup_bitcoin().
"""

import argparse
import logging
import os
import socket
import sys

import bitcoin
import socks

import chronoproof.bitcoin
import chronoproof.calendar

import chronoclient
import chronoclient.cache
import chronoclient.cmds

DEFAULT_WHITELIST = ['https://*.calendar.opentimestamps.org', 'https://*.calendar.eternitywall.com']

DEFAULT_SOCKS5_PORT = 1080

BITCOIN_NETWORKS = ('mainnet', 'testnet', 'regtest')


def make_common_options_arg_parser():
    parser = argparse.ArgumentParser(description="Create, upgrade and verify chronoproof timestamps.")
    parser.add_argument('--version', action='version', version='v%s' % chronoclient.__version__)

    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="Be more quiet.")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Be more verbose. Both -v and -q may be used multiple times.")

    calendars = parser.add_argument_group('calendars')
    whitelist_group = calendars.add_mutually_exclusive_group()
    whitelist_group.add_argument('-l', '--whitelist', metavar='URL', action='append', default=[],
                                 help="Only contact calendars matching URL when upgrading; "
                                      "globs allowed. Default: %s" % ', '.join(DEFAULT_WHITELIST))
    whitelist_group.add_argument('--no-remote-calendars', dest='whitelist', action='store_const', const=None,
                                 help="Never contact the calendars named in timestamps.")

    cache = parser.add_argument_group('cache')
    cache_group = cache.add_mutually_exclusive_group()
    cache_group.add_argument("--cache", dest='cache_path', metavar='PATH',
                             default=chronoclient.cache.DEFAULT_CACHE_PATH,
                             help="Where to cache timestamps. Default: %(default)s")
    cache_group.add_argument("--no-cache", dest='cache_path', action="store_const", const=None,
                             help="Don't use the timestamp cache.")

    btc = parser.add_argument_group('bitcoin')
    btc_net_group = btc.add_mutually_exclusive_group()
    btc_net_group.add_argument('--btc-testnet', dest='btc_net', action='store_const', const='testnet',
                               default='mainnet',
                               help="Verify against Bitcoin testnet.")
    btc_net_group.add_argument('--btc-regtest', dest='btc_net', action='store_const', const='regtest',
                               help="Verify against Bitcoin regtest.")
    btc_net_group.add_argument('--no-bitcoin', dest='use_bitcoin', action='store_false', default=True,
                               help="Don't verify Bitcoin attestations at all.")
    btc.add_argument("--bitcoin-node", metavar='URL',
                     help="Bitcoin Core RPC URL. Default: read bitcoin.conf")

    parser.add_argument("-w", "--wait", action="store_true", default=False,
                        help="Keep polling calendars until the timestamp is complete.")
    parser.add_argument("--wait-interval", type=int, default=30,
                        help=argparse.SUPPRESS)

    parser.add_argument("--socks5-proxy", metavar='HOST[:PORT]',
                        help="Send all traffic, DNS lookups included, through a SOCKS5 proxy. "
                             "Default port: %d" % DEFAULT_SOCKS5_PORT)

    return parser


def make_whitelist(urls, parser):
    if not urls:
        urls = DEFAULT_WHITELIST

    whitelist = chronoproof.calendar.UrlWhitelist()
    for url in urls:
        try:
            whitelist.add(url)
        except ValueError as exp:
            parser.error(str(exp))
    return whitelist


def setup_socks5_proxy(proxy, parser):
    """Route every new socket through a SOCKS5 proxy"""
    host, _, port = proxy.partition(':')
    if not port:
        port = DEFAULT_SOCKS5_PORT
    elif port.isdigit():
        port = int(port)
    else:
        parser.error("SOCKS5 proxy port must be an integer; got %r" % port)

    socks.set_default_proxy(socks.SOCKS5, host, port, rdns=True)
    socket.socket = socks.socksocket

    # urllib resolves names itself through create_connection(); hand the
    # unresolved address to the proxy instead.
    def create_connection(address, timeout=None, source_address=None):
        sock = socks.socksocket()
        if timeout is not None:
            sock.settimeout(timeout)
        sock.connect(address)
        return sock
    socket.create_connection = create_connection


def handle_common_options(args, parser):
    args.parser = parser
    args.verbosity = args.verbose - args.quiet

    if args.cache_path is not None:
        args.cache_path = os.path.normpath(os.path.expanduser(args.cache_path))
    try:
        args.cache = chronoclient.cache.TimestampCache(args.cache_path)
    except (OSError, ValueError) as exp:
        parser.error("Could not open timestamp cache: %s" % exp)

    if args.whitelist is not None:
        args.whitelist = make_whitelist(args.whitelist, parser)

    if args.socks5_proxy is not None:
        setup_socks5_proxy(args.socks5_proxy, parser)

    def setup_bitcoin():
        """Select the Bitcoin network and connect to a node

        Returns a BitcoinRPCBlockchain; exits if no node can be reached.
        """
        assert args.btc_net in BITCOIN_NETWORKS
        bitcoin.SelectParams(args.btc_net)

        try:
            return chronoproof.bitcoin.BitcoinRPCBlockchain.from_service_url(args.bitcoin_node)
        except chronoproof.bitcoin.BlockchainError as exp:
            logging.error("%s" % exp)
            sys.exit(1)

    args.setup_bitcoin = setup_bitcoin

    return args


def add_stamp_parser(subparsers):
    parser = subparsers.add_parser('stamp', aliases=['s'],
                                   help="Timestamp files")
    parser.add_argument('-c', '--calendar', metavar='URL', dest='calendar_urls', action='append', default=[],
                        help="Calendar to submit to; may be given more than once. "
                             "Default: %s" % ', '.join(chronoclient.cmds.DEFAULT_CALENDARS))
    parser.add_argument('-m', type=int, default=2,
                        help="Succeed once at least M calendars have answered. Default: %(default)d")
    parser.add_argument('--timeout', type=int, default=5,
                        help="Seconds to wait for calendars. Default: %(default)d")
    parser.add_argument('files', metavar='FILE', type=argparse.FileType('rb'), nargs='*',
                        help="Files to timestamp; stdin if none")
    parser.set_defaults(cmd_func=chronoclient.cmds.stamp_command)


def add_upgrade_parser(subparsers):
    parser = subparsers.add_parser('upgrade', aliases=['u'],
                                   help="Upgrade pending timestamps so they can be verified locally")
    parser.add_argument('-c', '--calendar', metavar='URL', dest='calendar_urls', action='append', default=[],
                        help="Ask this calendar instead of the ones named in the timestamp")
    parser.add_argument('-n', '--dry-run', action='store_true', default=False,
                        help="Don't write the upgraded timestamp")
    parser.add_argument('files', metavar='FILE', type=argparse.FileType('rb'), nargs='+',
                        help="Timestamp files; the old version is kept as FILE.bak")
    parser.set_defaults(cmd_func=chronoclient.cmds.upgrade_command)


def add_verify_parser(subparsers):
    parser = subparsers.add_parser('verify', aliases=['v'],
                                   help="Verify a timestamp")
    target = parser.add_mutually_exclusive_group()
    target.add_argument('-f', metavar='FILE', dest='target_fd', type=argparse.FileType('rb'), default=None,
                        help="File the timestamp is for. Default: TIMESTAMP without .ots")
    target.add_argument('-d', metavar='DIGEST', dest='hex_digest', default=None,
                        help="Verify a hex digest instead of a file")
    parser.add_argument('timestamp_fd', metavar='TIMESTAMP', type=argparse.FileType('rb'),
                        help="Timestamp file")
    parser.set_defaults(cmd_func=chronoclient.cmds.verify_command)


def add_info_parser(subparsers):
    parser = subparsers.add_parser('info', aliases=['i'],
                                   help="Show the contents of a timestamp")
    parser.add_argument('file', metavar='FILE', type=argparse.FileType('rb'),
                        help="Timestamp file")
    parser.set_defaults(cmd_func=chronoclient.cmds.info_command)


def parse_args(raw_args):
    parser = make_common_options_arg_parser()

    subparsers = parser.add_subparsers(title='commands')
    add_stamp_parser(subparsers)
    add_upgrade_parser(subparsers)
    add_verify_parser(subparsers)
    add_info_parser(subparsers)

    args = parser.parse_args(raw_args)
    return handle_common_options(args, parser)
