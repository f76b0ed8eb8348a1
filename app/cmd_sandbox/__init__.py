"""
CMD Sandbox - policy-validated, sandboxed command execution.

Commands are checked against a declarative security policy and then run
either as a shell-less local process or as a hardened Kubernetes Job.
"""

__version__ = "0.1.0"
