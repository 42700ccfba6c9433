from .config import CNNMNISTConfig
from .model import CNNMNISTModel, CNNMNISTClassifier

__all__ = ['CNNMNISTConfig', 'CNNMNISTModel', 'CNNMNISTClassifier']
