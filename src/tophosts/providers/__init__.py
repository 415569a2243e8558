"""Built-in metrics backends."""

__all__ = [
	"zabbix_base",
	"snapshot_base",
]
