#!/usr/bin/env python3
"""
Run script for the SafeGuard emergency detection core

Usage:
    python run_safeguard.py run                    # Start emergency detection
    python run_safeguard.py run --simulate-motion  # Use simulated motion sensors
    python run_safeguard.py test-alert             # Send a manual test alert
    python run_safeguard.py add-contact NAME PHONE # Add an emergency contact

Make sure to install dependencies first:
    pip install -e .
"""

from safeguard.main import main

if __name__ == '__main__':
    main()
