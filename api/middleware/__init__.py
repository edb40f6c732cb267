# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains bearer token authentication, rate limiting and the
problem response error handlers of the Rescue Network API.
"""
