# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Rescue Network platform.

This package contains the case lifecycle rules, geospatial math and volunteer
matching. Functions here do not perform I/O; the matcher reads candidates
through the storage interface it is given.
"""
