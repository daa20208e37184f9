from typing import Tuple, Optional

import torch
from torch import Tensor
import torch.nn as nn

from .errors import ConfigurationError

# Definition of InputTypes and OutputTypes
ShapeList = list[Tuple[int, ...]]
TensorList = list[Tensor]
TensorTuple = Tuple[Tensor, ...]


def _matches(shape: tuple, expected: tuple) -> bool:
    """Shape comparison where None in expected matches any size"""
    return len(shape) == len(expected) and all(
        e is None or s == e for s, e in zip(shape, expected)
    )


class PhaseSpaceMapping(nn.Module):
    """Base class for all phase-space building blocks.

    The forward direction is the mapping from random numbers (or
    intermediate variables) to the momenta, i.e.
        ..math::
            map: f(r) = p.
            inverse: f^{-1}(p) = r.
    Every map returns the produced tensors together with the
    jacobian factor (not the log) of the mapping.
    """

    def __init__(
        self,
        dims_in: ShapeList,
        dims_out: ShapeList,
        dims_c: Optional[ShapeList] = None,
        debug: bool = False,
    ):
        """
        Args:
            dims_in (ShapeList): list of input shapes for the forward map w/o batch dimension ``b``.
            dims_out (ShapeList): list of output shapes w/o batch dimension ``b``.
            dims_c (ShapeList, optional): list of shapes for the conditions. Defaults to None.
            debug (bool, optional): check shapes of all inputs. Defaults to False.
        """
        super().__init__()
        self.dims_in = dims_in
        self.dims_out = dims_out
        self.dims_c = dims_c
        self.debug = debug

    def _check_inputs(
        self,
        inputs: TensorList,
        condition: Optional[TensorList] = None,
        inverse: bool = False,
    ) -> None:
        """Checks if inputs have the correct formats

        Args:
            inputs (TensorList): inputs for foward map or inverse map shapes dims_in and dims_out
            condition (TensorList, optional): conditional inputs with shapelist [shape_c1, shape_c2,...].
                If None, the condition is ignored. Defaults to None.
            inverse (bool, optional): check inverse map. Defaults to False.

        Raises:
            ConfigurationError: raises error when inputs do not have correct dimensions
        """
        dims = self.dims_out if inverse else self.dims_in
        dim_list = [tuple(x.shape[1:]) for x in inputs]
        if len(inputs) != len(dims) or not all(
            _matches(d, e) for d, e in zip(dim_list, dims)
        ):
            raise ConfigurationError(
                f"{self.__class__.__name__}: expected input shape {dims}, but got {dim_list}"
            )
        if self.dims_c is None:
            return
        if condition is None:
            raise ConfigurationError(f"{self.__class__.__name__}: expected condition")
        cdim_list = [tuple(c.shape[1:]) for c in condition]
        if not all(_matches(d, e) for d, e in zip(cdim_list, self.dims_c)):
            raise ConfigurationError(
                f"{self.__class__.__name__}: expected condition shape {self.dims_c}, got {cdim_list}"
            )
        if any(c.shape[0] != inputs[0].shape[0] for c in condition):
            raise ConfigurationError(
                "Number of input items must be equal to number of any condition item."
            )

    def map(
        self,
        inputs: TensorList,
        condition: Optional[TensorList] = None,
        **kwargs,
    ) -> Tuple[TensorTuple, Tensor]:
        """
        Forward pass ``f``, from the random numbers ``r`` to the momenta ``p``.

        Args:
            inputs (TensorList): forward map inputs with shapes=[(b, *dims_in0), (b, *dims_in1),...].
            condition (TensorList, optional): conditional inputs. Defaults to None.

        Returns:
            out (TensorTuple): tuple including momenta with shape=(b, *dims_out0).
            det (Tensor): the jacobian of the mapping shape=(b,).
        """
        if self.debug:
            self._check_inputs(inputs, condition)
        return self._map(inputs, condition, **kwargs)

    def forward(self, inputs: TensorList, condition: Optional[TensorList] = None, **kwargs):
        return self.map(inputs, condition, **kwargs)

    def _map(self, inputs, condition, **kwargs):
        """Should be overridden by all subclasses."""
        raise NotImplementedError(
            f"{self.__class__.__name__} does not provide _map(...) method"
        )

    def map_inverse(
        self,
        inputs: TensorList,
        condition: Optional[TensorList] = None,
        **kwargs,
    ) -> Tuple[TensorTuple, Tensor]:
        """
        Inverse pass ``f^{-1}``, from the momenta ``p`` back to the inputs.

        Args:
            inputs (TensorList): input list including momenta with shape=(b, *dims_out0).
            condition (TensorList, optional): conditional inputs. Defaults to None.

        Returns:
            out (TensorTuple): tuple of the forward inputs
            det (Tensor): jacobian of the inverse mapping with shape=(b,).
        """
        if self.debug:
            self._check_inputs(inputs, condition, inverse=True)
        return self._map_inverse(inputs, condition, **kwargs)

    def _map_inverse(self, inputs, condition, **kwargs):
        """Should be overridden by all subclasses."""
        raise NotImplementedError(
            f"{self.__class__.__name__} does not provide _map_inverse(...) method"
        )
