"""
Abstract base class for loading trained sweep candidates for inference.
"""

from abc import ABC, abstractmethod
from typing import Tuple, List, Dict, Any, Optional
import io
import logging

import numpy as np
import torch
import torch.nn as nn
from PIL import Image

from mnist_sweep.data import IMAGE_SIZE, normalize_pixels

logger = logging.getLogger(__name__)

class BaseModel(ABC):
    """
    Abstract base class defining the common interface for trained models.
    """

    def __init__(self, model_name: str, checkpoint_path: Optional[str] = None):
        """
        Initialize the base model.

        Args:
            model_name: Name identifier for the model
            checkpoint_path: Path to the model checkpoint file
        """
        self.model_name = model_name
        self.checkpoint_path = checkpoint_path
        self.model: Optional[nn.Module] = None
        self.device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')

    @abstractmethod
    def create_model(self) -> nn.Module:
        """
        Create and return the model architecture.

        Returns:
            nn.Module: The model architecture
        """
        pass

    def load_model(self) -> nn.Module:
        """
        Load the model and its trained weights.

        Returns:
            nn.Module: The loaded model
        """
        if self.model is None:
            self.model = self.create_model()

        if self.checkpoint_path:
            try:
                checkpoint = torch.load(self.checkpoint_path, map_location=self.device)

                # Training checkpoints wrap the weights with metadata
                if isinstance(checkpoint, dict) and 'model_state_dict' in checkpoint:
                    state_dict = checkpoint['model_state_dict']
                else:
                    state_dict = checkpoint

                self.model.load_state_dict(state_dict)
            except Exception as e:
                raise RuntimeError(f"Failed to load checkpoint from {self.checkpoint_path}: {e}")
            logger.info(f"Loaded {self.model_name} from {self.checkpoint_path}")

        self.model.to(self.device)
        self.model.eval()
        return self.model

    def preprocess_image(self, image_bytes: bytes) -> torch.Tensor:
        """
        Preprocess image bytes for model inference.

        Args:
            image_bytes: Raw bytes of an encoded image

        Returns:
            torch.Tensor: Tensor of shape [1, 1, 28, 28] with values in [0, 1]
        """
        try:
            image = Image.open(io.BytesIO(image_bytes)).convert('L')
            if image.size != (IMAGE_SIZE, IMAGE_SIZE):
                image = image.resize((IMAGE_SIZE, IMAGE_SIZE))
            pixels = normalize_pixels(np.asarray(image)[np.newaxis])
        except Exception as e:
            raise ValueError(f"Image preprocessing error: {e}")

        return torch.from_numpy(pixels).to(self.device)

    def predict_tensor(self, images: torch.Tensor) -> torch.Tensor:
        """Softmax probabilities for an already normalized batch."""
        if self.model is None:
            self.load_model()

        with torch.no_grad():
            logits = self.model(images.to(self.device))
            return torch.softmax(logits, dim=1)

    def predict(self, image_bytes: bytes) -> Tuple[int, float, List[float]]:
        """
        Make a prediction on the given image.

        Args:
            image_bytes: Raw bytes of an encoded image

        Returns:
            Tuple[int, float, List[float]]: (predicted_class, confidence, probabilities)
        """
        probabilities = self.predict_tensor(self.preprocess_image(image_bytes))

        predicted_class = torch.argmax(probabilities, dim=1).item()
        confidence = torch.max(probabilities, dim=1)[0].item()
        prob_list = probabilities.squeeze(0).cpu().numpy().tolist()

        return int(predicted_class), float(confidence), prob_list

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get model metadata and information.

        Returns:
            Dict[str, Any]: Model information dictionary
        """
        return {
            "name": self.model_name,
            "type": self.__class__.__name__,
            "checkpoint_path": self.checkpoint_path,
            "device": str(self.device),
            "is_loaded": self.model is not None
        }
