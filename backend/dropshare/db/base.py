# Import all the models, so that Base has them before being
# imported by create_all / Alembic
from dropshare.db.base_class import Base  # noqa
from dropshare.models.user import User  # noqa
from dropshare.models.subscription import Subscription  # noqa
from dropshare.models.file import File, Folder  # noqa
from dropshare.models.share import ShareLink  # noqa
from dropshare.models.log import Log  # noqa
