"""Connect Four package exposing game rules, the computer opponent, and the web application."""

from .ai import ComputerPlayer
from .board import Board
from .game import Game
from .rooms import RoomRegistry
from .server import app, create_app

__all__ = ["Board", "ComputerPlayer", "Game", "RoomRegistry", "app", "create_app"]
