from punt.core.app_factory import create_app
from punt.core.monitoring import init_monitoring

init_monitoring()

app = create_app()
