"""Command line interface for pkgsys"""
