from .tenancy import Dealer, License
from .sync import SyncSequence, SyncTransaction, SyncDevice, SyncState
from .activity import RemoteActivityLog

__all__ = [
    'Dealer', 'License',
    'SyncSequence', 'SyncTransaction', 'SyncDevice', 'SyncState',
    'RemoteActivityLog',
]
