"""
Configuration management subsystem for Goose Tap.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup (.env supported)
- Includes: database URL, pool sizes, retry tuning, logging switches
- Changes require a restart

**Dynamic (ConfigManager):**
- Loaded from YAML files under `config/`
- Includes: offline cap, energy regeneration, XP rewards, batch ceilings
- In-memory overrides for operators and tests

Usage
-----
```python
from goosetap.core.config import Config, ConfigManager

url = Config.DATABASE_URL
cap_hours = ConfigManager.get("gameplay.offline.max_hours", 3)
```
"""

from goosetap.core.config.config import Config, Environment
from goosetap.core.config.manager import ConfigManager

__all__ = ["Config", "ConfigManager", "Environment"]
