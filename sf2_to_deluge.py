#!/usr/bin/env python3
"""
SoundFont to Deluge Converter

Converts SoundFont (.sf2) banks into Deluge synth patches (XML) plus a folder
of WAV samples. Settings come from command-line arguments and an optional
YAML configuration file.
"""

import argparse
import os
import sys
import warnings
from typing import Any, Dict, Optional
from xml.etree.ElementTree import ParseError

import yaml

# Add the project directory to the path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from deluge import read_sound
from diagnostics import ConversionWarning, Diagnostics
from sample_export import save_samples
from sf2_convert import EARLIEST_COMPATIBLE_FIRMWARE, FIRMWARE_VERSION, convert_all
from sf2_soundfont import Sf2SoundFont


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file or use defaults

    Args:
        config_file: Path to YAML configuration file

    Returns:
        Configuration dictionary
    """
    default_config = {
        'sample_folder': None,
        'synth_folder': None,
        'synth_prefix': '',
        'firmware_version': FIRMWARE_VERSION,
        'earliest_compatible_firmware': EARLIEST_COMPATIBLE_FIRMWARE,
        'polyphony': 'poly',
        'sort_zones': True,
        'export_samples': True,
        'verbose': False,
    }

    if config_file:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
        if config is not None and not isinstance(config, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        default_config.update(config or {})

    return default_config


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Converts Soundfonts to Deluge xml + sample folders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sf2_to_deluge.py bank.sf2 -a SAMPLES/bank -y SYNTHS
  sf2_to_deluge.py -c config.yaml bank.sf2
  sf2_to_deluge.py -d bank.sf2
  sf2_to_deluge.py -d SYNTHS/Piano.xml
        """
    )

    parser.add_argument(
        'input',
        help='Input .sf2 bank (or a Deluge .xml patch to dump)'
    )

    parser.add_argument(
        '-a', '--sample-folder',
        dest='sample_folder',
        help='Output folder to save samples to'
    )

    parser.add_argument(
        '-y', '--synth-folder',
        dest='synth_folder',
        help='Output folder to save synth xml to'
    )

    parser.add_argument(
        '-p', '--synth-prefix',
        dest='synth_prefix',
        help='Prefix to prepend to synth xml file names'
    )

    parser.add_argument(
        '-d', '--dump',
        action='store_true',
        help='Dump info'
    )

    parser.add_argument(
        '-c', '--config',
        help='Path to YAML configuration file'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        default=None,
        help='Print progress and debug information'
    )

    return parser.parse_args(argv)


def run(args, config: Dict[str, Any]) -> int:
    """Runs one conversion; format errors propagate to the caller"""
    diagnostics = Diagnostics(verbose=bool(config.get('verbose')))

    if args.input.lower().endswith('.xml'):
        sound = read_sound(args.input)
        if args.dump:
            print("dumping")
            print(sound)
        return 0

    soundfont = Sf2SoundFont(args.input, diagnostics)
    if args.dump:
        print("dumping")
        soundfont.dump()

    sample_folder = config.get('sample_folder')
    if sample_folder and config.get('export_samples', True):
        save_samples(soundfont, sample_folder, diagnostics)

    synth_folder = config.get('synth_folder')
    if synth_folder:
        # If the samples aren't saved above a placeholder folder is referenced
        samples = sample_folder or 'SAMPLES'
        paths = convert_all(soundfont, synth_folder, samples, config.get('synth_prefix') or '',
                            diagnostics, config)
        print(f"Conversion completed: {len(paths)} presets written to {synth_folder}")

    if diagnostics.warnings:
        print(f"{len(diagnostics.warnings)} warning(s)", file=sys.stderr)
    return 0


def main(argv=None):
    """Main function"""
    args = parse_arguments(argv)

    if not os.path.exists(args.input):
        print(f"Error: Input file '{args.input}' not found")
        return 1

    try:
        config = load_config(args.config)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print(f"Error loading config file {args.config}: {e}")
        return 1

    # Override config with command-line arguments
    if args.sample_folder:
        config['sample_folder'] = args.sample_folder
    if args.synth_folder:
        config['synth_folder'] = args.synth_folder
    if args.synth_prefix is not None:
        config['synth_prefix'] = args.synth_prefix
    if args.verbose is not None:
        config['verbose'] = args.verbose

    warnings.simplefilter('always', ConversionWarning)
    try:
        return run(args, config)
    except (ValueError, ParseError) as e:
        # Sf2FormatError, RiffFormatError and malformed patches
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
