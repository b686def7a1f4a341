# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""Download and summarize gridded climate normals over areas and at points."""
