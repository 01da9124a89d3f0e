"""Pulse Pattern Synthesizer core package.

The structure of this package is as follows:
 - :mod:`quantization` fits continuous values to discrete device grids.
 - :mod:`pulse_shapes` encodes elementary pulses as ordered phases.
 - :mod:`platforms` describes what each supported platform can produce.
 - :mod:`stimulus` contains the :class:`stimulus.StimulationRequest` that holds
   the user parameters.
 - :mod:`fitter` fits a request to a platform.
 - :mod:`scheduler` lays out the pulses of a train in time.
 - :mod:`sequence` contains the device-ready sequence and the electrodogram.
 - :mod:`pulse_train` ties everything together into an immutable snapshot.
 - :mod:`outputs` contains sinks that sequences can be sent to.
 - :mod:`settings` contains the data model used to parse and validate the
   config.
"""
