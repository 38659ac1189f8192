#!/usr/bin/env python3
"""Backup runner"""
from devbackup.cli import main

if __name__ == '__main__':
    main()
