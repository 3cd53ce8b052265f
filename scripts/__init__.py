"""
Backend Scripts Module

Available scripts:
    - seed_workflows.py: Registers the standard HR approval workflows

Usage:
    python -m scripts.seed_workflows
"""
