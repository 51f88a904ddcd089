# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/__main__.py
from clusterprep.cli.app import app

if __name__ == "__main__":
    app(prog_name="clusterprep")
