"""Runtime orchestration (job queue, workers, container lifecycle).

This layer is responsible for:
- buffering container jobs accepted by the webhook
- throttling container creation with a fixed worker pool
- creating/starting runner containers and reacting to their exit

It should remain independent from the HTTP layer (`ghrunner/api`).
"""
