"""Identity domain: credential loading, refresh, and connection swapping.

Structure:
    credentials.py  Parse and validate Teleport identity files
    mailbox.py      Latest-wins channel for connection updates
    manager.py      CredentialManager and ConnectionContext
"""

from teleport_autoreviewer.identity.credentials import (
    Credential,
    get_credential_expiry_info,
    load_identity_file,
)
from teleport_autoreviewer.identity.mailbox import LatestValueMailbox
from teleport_autoreviewer.identity.manager import (
    ConnectionContext,
    CredentialManager,
    RefreshResult,
)

__all__ = [
    "ConnectionContext",
    "Credential",
    "CredentialManager",
    "LatestValueMailbox",
    "RefreshResult",
    "get_credential_expiry_info",
    "load_identity_file",
]
