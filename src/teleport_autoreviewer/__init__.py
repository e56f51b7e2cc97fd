"""teleport-autoreviewer: automatic denial of Teleport access requests.

Watches pending access requests on a Teleport cluster and denies the ones that
match configured rejection rules. Everything else is left for human review.
"""

__version__ = "0.1.0"
