"""Pulse Pattern Synthesizer package.

The pulse pattern synthesizer, or PPS, turns electrical stimulation parameters
(phase duration, interphase gap, rate, level, duration) into pulse trains that
a cochlear implant research platform can actually play, together with the
electrodogram of the resulting stimulus.

The structure of this package is as follows:
 - :mod:`pulse_pattern_synthesizer.core` contains the synthesis pipeline.
 - :mod:`pulse_pattern_synthesizer.util` contains the settings loader and
   helpers shared by the scripts.
 - :mod:`pulse_pattern_synthesizer.scripts` contains the command line entry
   points.
 - :mod:`pulse_pattern_synthesizer.errors` contains the exceptions raised
   while deriving a pulse train.
"""
