import torch
import torch.nn as nn
from typing import Optional, Sequence

from electrolyte_nn.errors import ConfigurationError

def get_activation(name: str) -> nn.Module:
    """Returns the activation function corresponding to the given name."""
    activations = {
        'Tanh': nn.Tanh(),
        'Sigmoid': nn.Sigmoid(),
        'Identity': nn.Identity(),
        'ReLU': nn.ReLU(),
    }
    if name not in activations:
        raise ConfigurationError(f"Unknown activation '{name}'. Valid choices are: {list(activations)}")
    return activations[name]

class NeuralNetwork(nn.Module):
    """
    Fully-connected network with two hidden layers.

    With the default tanh output the network is bounded, matching a target
    scaled into [0, 1].
    """
    def __init__(self,
                 input_size: int = 2,
                 hidden_sizes: Sequence[int] = (6, 4),
                 output_size: int = 1,
                 activation_name: str = 'Tanh',
                 output_activation_name: str = 'Tanh'):
        super(NeuralNetwork, self).__init__()

        hidden_sizes = tuple(hidden_sizes)
        if len(hidden_sizes) != 2 or any(size < 1 for size in hidden_sizes):
            raise ConfigurationError(
                f"Two positive hidden layer sizes are required, got {list(hidden_sizes)}"
            )

        self.input_size = input_size
        self.hidden_sizes = hidden_sizes
        self.output_size = output_size

        self.layers = nn.ModuleList()
        current_neurons = input_size

        # 1. Hidden Layers (first is closer to the input)
        for nr_neurons in hidden_sizes:
            self.layers.append(nn.Linear(current_neurons, nr_neurons))
            self.layers.append(get_activation(activation_name))
            current_neurons = nr_neurons

        # 2. Output Layer
        self.layers.append(nn.Linear(current_neurons, output_size))
        self.layers.append(get_activation(output_activation_name))

    def reset_parameters(self, generator: Optional[torch.Generator] = None):
        """Draws all weights and biases from a standard normal distribution."""
        with torch.no_grad():
            for param in self.parameters():
                param.normal_(mean=0.0, std=1.0, generator=generator)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        for layer in self.layers:
            x = layer(x)
        return x
