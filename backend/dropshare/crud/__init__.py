from .crud_user import user
from .crud_file import file, folder
from .crud_share import share
from .crud_log import log
