# Tsukimi Speaker Setup Services
#
# Entry points that provision a Raspberry Pi to run the Tsukimi Speaker as an
# always-on service. Each module is runnable with `python -m` and is also
# exposed as a console script.
#
# Services:
#   - tsukimi_setup_and_run.py: First-boot provisioning, or hand-off to the speaker once provisioned
#   - tsukimi_install_autostart.py: Installs the boot trigger (systemd oneshot or rc.local)
#   - tsukimi_fix_autostart.py: Moves the speaker service into the user's systemd scope
#   - tsukimi_audio_dac.py: Enables the MAX98357A I2S DAC overlay and ALSA defaults
