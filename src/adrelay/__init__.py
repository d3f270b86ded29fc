# adrelay — credential-holding gateway for ad and social platform APIs.
# Created: 2026-10-18
#
# The browser talks to adrelay; adrelay holds the provider credentials, refreshes
# the delegated OAuth token and runs resumable video uploads on its behalf.

__version__ = "0.1.0"
