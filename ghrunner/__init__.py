"""Ephemeral GitHub Actions runner provisioner.

Turns `workflow_job` webhooks into single-use runner containers.
"""
