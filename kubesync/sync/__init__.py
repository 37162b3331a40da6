"""Bidirectional sync — keeping a spec repository and a cluster reconciled.

This package provides the primitives for:
- Change extraction: turning pushed commits into ordered change records
- Loop protection: recognizing commits kubesync made itself
- Spec indexing: matching cluster resources to spec files by identity
- Reverse sync: writing cluster changes back to the repository
- Forward sync: applying repository changes to the cluster
"""
