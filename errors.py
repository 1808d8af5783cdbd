#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Failures that abort a brief run. None of them is retried."""


class BriefError(Exception):
    pass


class ConfigMissing(BriefError):
    """A required secret or key is not set."""


class UpstreamUnavailable(BriefError):
    """Transport error or non-2xx status from a market API."""


class UpstreamMalformed(BriefError):
    """The response parsed but a field is absent or not numeric."""


class DeliveryFailed(BriefError):
    """Telegram rejected the message."""
