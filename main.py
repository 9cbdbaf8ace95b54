from PyQt6.QtWidgets import QApplication
import argparse
import multiprocessing
import sys

from config.logging_config import configure_logging
from controllers.master_controller import MasterController


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Segmentation d'IRM avec overlay de labels.")
    parser.add_argument("volume", nargs="?", help="Volume NIfTI à ouvrir au démarrage")
    parser.add_argument("--model", type=int, default=None, help="Index du modèle à lancer après chargement")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    return parser.parse_args(argv)


if __name__ == "__main__":
    # Les workers d'inférence sont lancés en mode spawn.
    multiprocessing.freeze_support()

    args = parse_args()
    configure_logging(args.log_level, args.log_file)

    app = QApplication(sys.argv)

    # Créer le contrôleur principal
    master_controller = MasterController(model_index=args.model)
    app.aboutToQuit.connect(master_controller.segmentation_controller.shutdown)

    # Démarrer l'application
    master_controller.run()
    if args.volume:
        master_controller.open_path(args.volume)

    sys.exit(app.exec())
