import os

from config.settings import CONTROLLER_CONFIG_FILE_NAME, TRAINING_DATA_FILE_NAME


class PathManager:
    """
    Central path manager: derives every file location the core needs from a
    single base directory, injected once at startup.
    """
    def __init__(self, base_dir: str):
        """
        Args:
            base_dir (str): Directory holding the controller's data files.
        """
        self.base_dir = base_dir

        # --- Configuration ---
        self.controller_config = os.path.join(self.base_dir, CONTROLLER_CONFIG_FILE_NAME)

        # --- Learned data ---
        self.training_data = os.path.join(self.base_dir, TRAINING_DATA_FILE_NAME)

    def ensure_base_dir(self):
        """Creates the base directory if it does not exist yet."""
        os.makedirs(self.base_dir, exist_ok=True)
